from typing import Final

PETSAFE_API_BASE: Final = "https://platform.cloud.petsafe.net"

COGNITO_CLIENT_ID: Final = "18hpp04puqmgf5nc6o474lcp2g"
COGNITO_REGION: Final = "us-east-1"
COGNITO_TARGET_PREFIX: Final = "AWSCognitoIdentityProviderService"
COGNITO_CONTENT_TYPE: Final = "application/x-amz-json-1.1"

# refresh this many seconds before the identity token actually expires
REFRESH_MARGIN: Final = 100.0

# statuses that trigger the single forced refresh + retry
AUTH_RETRY_STATUSES: Final = frozenset({401, 403})

REQUEST_TIMEOUT: Final = 30.0
TRANSPORT_RETRIES: Final = 3
