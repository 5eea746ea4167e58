"""Constants for the S3 Lifecycle Operator."""

API_GROUP = "s3lifecycle.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

KIND_BUCKET_LIFECYCLE = "BucketLifecycleConfiguration"
KIND_PROVIDER = "Provider"

PLURAL_PROVIDERS = "providers"

FINALIZER = f"{API_GROUP}/finalizer"

# Separator between bucket name and expected owner in the persisted resource ID.
# Changing it breaks every stored status.id.
RESOURCE_ID_SEPARATOR = ","

# S3 error codes
ERR_CODE_NO_SUCH_BUCKET = "NoSuchBucket"
ERR_CODE_NO_SUCH_LIFECYCLE_CONFIGURATION = "NoSuchLifecycleConfiguration"
ERR_CODE_NO_SUCH_TAG_SET = "NoSuchTagSet"
ERR_CODE_NO_SUCH_TAG_SET_ERROR = "NoSuchTagSetError"

NOT_FOUND_CODES = (ERR_CODE_NO_SUCH_LIFECYCLE_CONFIGURATION, ERR_CODE_NO_SUCH_BUCKET)
RETRYABLE_WRITE_CODES = (ERR_CODE_NO_SUCH_BUCKET, ERR_CODE_NO_SUCH_LIFECYCLE_CONFIGURATION)

RULE_STATUS_ENABLED = "Enabled"
RULE_STATUS_DISABLED = "Disabled"
RULE_STATUSES = (RULE_STATUS_ENABLED, RULE_STATUS_DISABLED)

TRANSITION_STORAGE_CLASSES = (
    "GLACIER",
    "STANDARD_IA",
    "ONEZONE_IA",
    "INTELLIGENT_TIERING",
    "DEEP_ARCHIVE",
    "GLACIER_IR",
)

AWS_TAG_PREFIX = "aws:"

CONDITION_READY = "Ready"
CONDITION_STABLE = "Stable"
