"""
This is the main entrypoint command for running the operator
"""
# Standard
from typing import List, Optional
import argparse
import os
import signal

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config, constants
from ..api.registry import SchemeRegistry, build_registry
from ..deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from ..exceptions import ValidationError
from ..managed_object import ManagedObject
from ..reconcile import MemcachedReconciler, ReconciliationResult, ResourceKey
from ..watch_manager import MemcachedWatchManager
from .base import CmdBase

log = alog.use_channel("MAIN")


class RunOperatorCmd(CmdBase):
    __doc__ = __doc__

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser("run", help=__doc__)
        runtime_args = parser.add_argument_group("Runtime Configuration")
        runtime_args.add_argument(
            "--cr",
            "-c",
            default=None,
            help="(dry run) A Memcached manifest yaml to admit and apply directly",
        )
        runtime_args.add_argument(
            "--resource_dir",
            "-r",
            default=None,
            help="(dry run) Path to a directory of yaml files that should exist in the cluster",
        )
        runtime_args.add_argument(
            "--once",
            action="store_true",
            default=False,
            help="(dry run) Reconcile every Memcached once and exit",
        )
        return parser

    def cmd(self, args: argparse.Namespace):
        # Validate args
        assert args.cr is None or (
            config.dry_run and os.path.isfile(args.cr)
        ), "Can only specify --cr with dry run and it must point to a valid file"
        assert args.resource_dir is None or (
            config.dry_run and os.path.isdir(args.resource_dir)
        ), "Can only specify --resource_dir with dry run and it must point to a valid directory"
        assert (
            not args.once or config.dry_run
        ), "Can only specify --once with dry run"

        registry = build_registry()
        resources = self._parse_resource_dir(args.resource_dir)
        deploy_manager = self._setup_deploy_manager(resources)

        # If given, admit the CR and apply it directly
        if args.cr:
            log.info("Applying CR [%s]", args.cr)
            with open(args.cr, encoding="utf-8") as handle:
                cr_manifest = yaml.safe_load(handle)
            deploy_manager.deploy([self.admit(registry, cr_manifest)])

        if args.once:
            self.reconcile_all(deploy_manager, registry)
            return

        manager = MemcachedWatchManager(deploy_manager, registry)

        # Register the signal handler to stop the watches
        def do_stop(*_, **__):  # pragma: no cover
            manager.stop_all()

        signal.signal(signal.SIGINT, do_stop)
        signal.signal(signal.SIGTERM, do_stop)

        log.info("Starting Watches")
        manager.start_all()
        manager.wait()

        # All done!
        log.info("SHUTTING DOWN")

    ## Impl ##

    @staticmethod
    def admit(registry: SchemeRegistry, manifest: dict) -> dict:
        """Run a manifest through defaulting and validation the way the
        admission webhooks would, and return the manifest to store
        """
        manifest.setdefault("metadata", {}).setdefault("namespace", "default")
        doc = registry.parse(manifest)
        callbacks = registry.admission_callbacks(doc.api_version)
        doc = callbacks.default_fn(doc)
        violations = callbacks.validate_fn(doc)
        if violations:
            raise ValidationError(doc.metadata.get("name"), violations)
        return registry.to_hub(doc).to_dict()

    @staticmethod
    def reconcile_all(
        deploy_manager: DeployManagerBase, registry: SchemeRegistry
    ) -> List[ReconciliationResult]:
        """Reconcile every Memcached currently stored once"""
        reconciler = MemcachedReconciler(deploy_manager, registry)
        _, manifests = deploy_manager.filter_objects_current_state(
            kind=constants.KIND, api_version=constants.HUB_API_VERSION
        )
        results = []
        for manifest in manifests:
            resource = ManagedObject(manifest)
            result = reconciler.reconcile(
                ResourceKey(resource.namespace, resource.name)
            )
            log.info("Reconciled %s: %s", resource, result.operations)
            results.append(result)
        return results

    @staticmethod
    def _parse_resource_dir(resource_dir: Optional[str]) -> List[dict]:
        """If given, this will parse all yaml files found in the given directory"""
        all_resources = []
        if resource_dir is not None:
            for fname in sorted(os.listdir(resource_dir)):
                if fname.endswith(".yaml") or fname.endswith(".yml"):
                    resource_path = os.path.join(resource_dir, fname)
                    log.debug3("Reading resource file [%s]", resource_path)
                    with open(resource_path, encoding="utf-8") as handle:
                        all_resources.extend(
                            res for res in yaml.safe_load_all(handle) if res
                        )
        return all_resources

    @staticmethod
    def _setup_deploy_manager(resources: List[dict]) -> DeployManagerBase:
        if config.dry_run:
            log.info("Running DRY RUN")
            return DryRunDeployManager(resources=resources)
        return OpenshiftDeployManager()
