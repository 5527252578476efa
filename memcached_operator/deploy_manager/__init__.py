"""
The DeployManager is the abstraction in charge of interacting with the
kubernetes cluster to deploy, look up, watch and delete resources.
"""

# Local
from .base import DeployManagerBase
from .dry_run_deploy_manager import DryRunDeployManager
from .kube_event import KubeEventType, KubeWatchEvent
from .openshift_deploy_manager import OpenshiftDeployManager
