"""
Typed documents for each revision of the Memcached API
"""

# Local
from . import v1alpha1, v1beta1
