"""Google OAuth2 scope definitions used by DriveSync."""


# Per-service scope definitions
GOOGLE_SCOPES: dict[str, list[str]] = {
    "drive": [
        "https://www.googleapis.com/auth/drive.file",
        "https://www.googleapis.com/auth/drive",
    ],
}


def scopes_for_service(service: str) -> list[str]:
    """Return OAuth2 scopes for a specific Google service.

    Args:
        service: Service name.

    Returns:
        List of scope URIs.

    Raises:
        ValueError: If service is not recognized.
    """
    if service not in GOOGLE_SCOPES:
        raise ValueError(
            f"Unknown Google service: {service}. "
            f"Valid services: {list(GOOGLE_SCOPES.keys())}"
        )
    return GOOGLE_SCOPES[service]
