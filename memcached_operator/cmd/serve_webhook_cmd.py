"""
Serve the admission and conversion webhooks over HTTPS
"""
# Standard
import argparse

# First Party
import alog

# Local
from .. import config
from ..admission.server import create_app
from ..api.registry import build_registry
from .base import CmdBase

log = alog.use_channel("MAIN")


class ServeWebhookCmd(CmdBase):
    __doc__ = __doc__

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("webhook", help=__doc__)

    def cmd(self, args: argparse.Namespace):
        app = create_app(build_registry())
        ssl_context = None
        if config.webhook.cert_file and config.webhook.key_file:
            ssl_context = (config.webhook.cert_file, config.webhook.key_file)
        else:
            log.warning("No webhook certificate configured. Serving plain HTTP")

        log.info(
            "Serving webhooks on %s:%s", config.webhook.host, config.webhook.port
        )
        app.run(
            host=config.webhook.host,
            port=int(config.webhook.port),
            ssl_context=ssl_context,
            threaded=True,
        )
