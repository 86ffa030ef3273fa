"""
Shared constants: custom resource coordinates, annotation keys and fixed names
"""

# Custom resources
API_GROUP = "goharbor.goharbor.io"
API_VERSION = "v1alpha1"
SERVER_CONFIG_KIND = "HarborServerConfiguration"
SERVER_CONFIG_PLURAL = "harborserverconfigurations"
BINDING_KIND = "PullSecretBinding"
BINDING_PLURAL = "pullsecretbindings"

# Namespace annotations
ANNOTATION_HARBOR_SERVER = "goharbor.io/harbor-server"
ANNOTATION_SERVICE_ACCOUNT = "goharbor.io/service-account"
ANNOTATION_PROJECT = "goharbor.io/project"
ANNOTATION_ROBOT = "goharbor.io/robot"
ANNOTATION_AUTO_PROVISIONED = "goharbor.io/auto-provisioned"
ANNOTATION_PROVISIONED_BY = "goharbor.io/provisioned-by"
ANNOTATION_IMAGE_REWRITE = "goharbor.io/image-rewrite"

# Binding, secret and pod annotations
ANNOTATION_ROBOT_SECRET_REF = "goharbor.io/robot-secret"
ANNOTATION_ROBOT_CREDENTIAL = "goharbor.io/robot-credential"
ANNOTATION_SECRET_OWNER = "goharbor.io/owner"
ANNOTATION_REWRITTEN_BY = "goharbor.io/rewritten-by"

BINDING_FINALIZER = "psb.finalizers.resource.goharbor.io"
DEFAULT_OWNER = "harbor-automation-4k8s"

# Pull secret format
PULL_SECRET_TYPE = "kubernetes.io/dockerconfigjson"
PULL_SECRET_DATA_KEY = ".dockerconfigjson"

# Robot token kept between robot creation and pull secret minting
ROBOT_CREDENTIAL_NAME_KEY = "username"
ROBOT_CREDENTIAL_TOKEN_KEY = "token"

# Access credential secret keys
ACCESS_KEY = "accessKey"
ACCESS_SECRET = "accessSecret"

# Server configuration health
STATUS_UNKNOWN = "Unknown"
STATUS_UNHEALTHY = "unhealthy"
HEALTH_CONDITION_TYPE = "Harbor"

BARE_REGISTRY = "docker.io"
