"""Constants for the IRSA Operator."""

# Watched resources
LEGACY_API_GROUP = "infrastructure.giantswarm.io"
LEGACY_API_VERSION = "v1alpha3"
CAPA_API_GROUP = "infrastructure.cluster.x-k8s.io"
CAPA_API_VERSION = "v1beta2"
EKS_API_GROUP = "controlplane.cluster.x-k8s.io"
EKS_API_VERSION = "v1beta2"
CAPI_API_GROUP = "cluster.x-k8s.io"
CAPI_API_VERSION = "v1beta1"

# Resource Kinds
KIND_LEGACY_CLUSTER = "AWSCluster"
KIND_CAPA_CLUSTER = "AWSCluster"
KIND_EKS_CONTROL_PLANE = "AWSManagedControlPlane"

PLURAL_AWS_CLUSTERS = "awsclusters"
PLURAL_AWS_MANAGED_CONTROL_PLANES = "awsmanagedcontrolplanes"
PLURAL_CLUSTERS = "clusters"
PLURAL_ROLE_IDENTITIES = "awsclusterroleidentities"

# Cluster flavors
FLAVOR_LEGACY = "legacy"
FLAVOR_CAPA = "capa"
FLAVOR_EKS = "eks"

# Labels
LABEL_RELEASE_VERSION = "release.giantswarm.io/version"
LABEL_CLUSTER_NAME = "cluster.x-k8s.io/cluster-name"
CUSTOMER_TAG_LABEL_PREFIX = "tag.provider.giantswarm.io/"

# Annotations
ANNOTATION_IRSA = "alpha.aws.giantswarm.io/iam-roles-for-service-accounts"
ANNOTATION_KEEP_OIDC_PROVIDER = "irsa-operator.giantswarm.io/keep-oidc-provider"
ANNOTATION_PRE_CLOUDFRONT_ALIAS = "irsa-operator.giantswarm.io/pre-cloudfront-alias"

# Finalizers
FINALIZER = "irsa-operator.finalizers.giantswarm.io"
FINALIZER_DEPRECATED = "irsa-operator.giantswarm.io/finalizer"

# Field Manager
FIELD_MANAGER = "irsa-operator"

# Persisted state
LEGACY_CREDENTIAL_ARN_KEY = "aws.awsoperator.arn"
SIGNING_KEY_PRIVATE_FIELD = "key"
SIGNING_KEY_PUBLIC_FIELD = "pub"
SERVICE_ACCOUNT_KEY_FIELD = "tls.key"
RECORD_FIELD_ARN = "arn"
RECORD_FIELD_DOMAIN = "domain"
RECORD_FIELD_DISTRIBUTION_ID = "distributionId"
RECORD_FIELD_OAI_ID = "originAccessIdentityId"
RECORD_FIELD_DOMAIN_ALIAS = "domainAlias"

# Published objects
DISCOVERY_OBJECT_KEY = ".well-known/openid-configuration"
JWKS_OBJECT_KEY = "keys.json"

# Tags
TAG_ORGANIZATION = "giantswarm.io/organization"
TAG_CLUSTER = "giantswarm.io/cluster"
TAG_CLOUD_PROVIDER = "kubernetes.io/cluster/{cluster}"
TAG_INSTALLATION = "giantswarm.io/installation"

# Release gates
CLOUDFRONT_MIN_RELEASE = "18.0.0"
LEGACY_MIN_RELEASE = "19.0.0"

# Requeue intervals (seconds)
SERVICE_ACCOUNT_REQUEUE_SECONDS = 30
RETRYABLE_REQUEUE_SECONDS = 30

# Event Reasons
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_IRSA_RECONCILED = "IRSAReconciled"
EVENT_REASON_IRSA_DELETED = "IRSADeleted"
EVENT_REASON_CERTIFICATE_NOT_ISSUED = "CertificateNotIssued"
EVENT_REASON_DISTRIBUTION_NOT_DISABLED = "DistributionNotDisabled"
EVENT_REASON_NOT_YET_READY = "NotYetReady"
