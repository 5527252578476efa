"""
Admission pipeline: defaulting, validation and the webhook surface
"""

# Local
from .defaulter import default_memcached
from .validator import FieldViolation, validate_memcached
