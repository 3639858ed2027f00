"""Service identity shared by every emitted signal."""

from collections.abc import Mapping

from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource

from apptelemetry.core.exceptions import ConfigurationError
from apptelemetry.core.models import AttributeValue, ResourceIdentity, freeze


def build_resource(
    service_name: str,
    service_version: str = "",
    extra_attributes: Mapping[str, AttributeValue] | None = None,
) -> ResourceIdentity:
    """Build the immutable resource identity for this process.

    The OpenTelemetry SDK contributes the telemetry.sdk.* attributes and
    anything set through OTEL_RESOURCE_ATTRIBUTES in the process environment.

    Args:
        service_name: Logical service name (e.g., "sample-py-app").
        service_version: Service version string.
        extra_attributes: Additional resource attributes. They cannot
            override service.name or service.version.

    Returns:
        ResourceIdentity with a read-only attribute mapping.

    Raises:
        ConfigurationError: If service_name is empty or blank.
    """
    if not service_name or not service_name.strip():
        raise ConfigurationError("service name must not be empty")

    attributes: dict[str, AttributeValue] = dict(extra_attributes or {})
    attributes[SERVICE_NAME] = service_name.strip()
    attributes[SERVICE_VERSION] = service_version
    resource = Resource.create(attributes)
    return ResourceIdentity(attributes=freeze(dict(resource.attributes)))


def parse_resource_attributes(raw: str) -> dict[str, str]:
    """Parse a comma-separated ``key=value`` list.

    Args:
        raw: String in OTEL_RESOURCE_ATTRIBUTES format, e.g.
            "deployment.environment=prod,team=core".

    Returns:
        Parsed attributes. Blank entries are ignored.

    Raises:
        ConfigurationError: If an entry has no "=" or an empty key.
    """
    attributes: dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"invalid resource attribute: {item!r}")
        attributes[key.strip()] = value.strip()
    return attributes
