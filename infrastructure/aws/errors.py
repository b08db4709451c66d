"""Translation of botocore failures into the provisioner error taxonomy."""

from typing import Optional, Union

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from core.models.errors import (
    AlreadyExistsError,
    AuthorizationError,
    NotFoundError,
    ProviderError,
    ProvisionerError,
)

AUTHORIZATION_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
    "AuthFailure",
    "InvalidClientTokenId",
    "ExpiredToken",
    "ExpiredTokenException",
    "SignatureDoesNotMatch",
    "UnrecognizedClientException",
}

TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeoutException",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "InternalError",
    "InternalFailure",
    "ServiceFailure",
    "InsufficientInstanceCapacity",
}

ALREADY_EXISTS_CODES = {
    "EntityAlreadyExists",
    "InvalidGroup.Duplicate",
    "InvalidPermission.Duplicate",
    "BucketAlreadyExists",
    "BucketAlreadyOwnedByYou",
}

NOT_FOUND_CODES = {
    "NoSuchEntity",
    "NoSuchBucket",
    "NoSuchTagSet",
    "NotFound",
    "404",
    "InvalidGroup.NotFound",
    "InvalidInstanceID.NotFound",
    "InvalidAMIID.NotFound",
    "InvalidSubnetID.NotFound",
    "InvocationDoesNotExist",
}


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def is_instance_profile_propagation_error(error: ClientError) -> bool:
    """True when run_instances rejects a profile IAM has not propagated yet."""
    message = error.response.get("Error", {}).get("Message", "")
    return (
        error_code(error) == "InvalidParameterValue"
        and "iamInstanceProfile" in message.replace(" ", "")
    ) or "Invalid IAM Instance Profile" in message


def translate_error(
    operation: str, error: Union[BotoCoreError, ClientError], subject: Optional[str] = None
) -> ProvisionerError:
    """Map a botocore exception onto the provisioner taxonomy."""
    if isinstance(error, ClientError):
        code = error_code(error)
        message = f"{operation} failed: {code}: {error.response.get('Error', {}).get('Message', '')}"

        if code in AUTHORIZATION_CODES:
            return AuthorizationError(message, subject=subject)
        if code in ALREADY_EXISTS_CODES:
            return AlreadyExistsError(message, subject=subject)
        if code in NOT_FOUND_CODES:
            return NotFoundError(message, subject=subject)
        if code in TRANSIENT_CODES or is_instance_profile_propagation_error(error):
            return ProviderError(message, subject=subject, transient=True, code=code)

        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return ProviderError(message, subject=subject, transient=status >= 500, code=code)

    if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
        return AuthorizationError(f"{operation} failed: {error}", subject=subject)

    if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return ProviderError(
            f"{operation} failed: {error}", subject=subject, transient=True,
            code=type(error).__name__,
        )

    return ProviderError(f"{operation} failed: {error}", subject=subject)
