"""
This module holds all of the command classes for the main entrypoint
"""

# Local
from .base import CmdBase
from .run_operator_cmd import RunOperatorCmd
from .serve_webhook_cmd import ServeWebhookCmd
