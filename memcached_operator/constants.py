"""
Shared module to hold constant values for the library
"""

# API group and kind of the managed resource
API_GROUP = "memcached.c5c3.io"
KIND = "Memcached"
HUB_VERSION = "v1beta1"
SPOKE_VERSION = "v1alpha1"
HUB_API_VERSION = f"{API_GROUP}/{HUB_VERSION}"
SPOKE_API_VERSION = f"{API_GROUP}/{SPOKE_VERSION}"

# Standard labels stamped on every child object
LABEL_NAME = "app.kubernetes.io/name"
LABEL_INSTANCE = "app.kubernetes.io/instance"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
APP_NAME = "memcached"
MANAGED_BY = "memcached-operator"

# Pod template annotations used to roll pods on secret rotation or on demand
SECRET_HASH_ANNOTATION_NAME = f"{API_GROUP}/secret-hash"
RESTART_TRIGGER_ANNOTATION_NAME = f"{API_GROUP}/restart-trigger"

# Ports
MEMCACHED_PORT = 11211
MEMCACHED_PORT_NAME = "memcached"
TLS_PORT = 11212
TLS_PORT_NAME = "memcached-tls"
METRICS_PORT = 9150
METRICS_PORT_NAME = "metrics"

# Secret mounts
SASL_VOLUME_NAME = "sasl-credentials"
SASL_MOUNT_PATH = "/etc/memcached/sasl"
SASL_PASSWORD_FILE_KEY = "password-file"
TLS_VOLUME_NAME = "tls-certificates"
TLS_MOUNT_PATH = "/etc/memcached/tls"

# Memory overhead (in MiB) required on top of the cache ceiling
MEMORY_OVERHEAD_MB = 32

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."

# Field manager name used for server-side apply
FIELD_MANAGER = "memcached-operator"
