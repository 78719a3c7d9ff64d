"""
Build backend implementations from settings.
"""

from edunexia_authz.core.config import AuthzSettings
from edunexia_authz.core.interfaces.attributes import AttributeSource


def create_attribute_source(config: AuthzSettings) -> AttributeSource | None:
    """
    Attribute source selected by AUTHZ_ATTRIBUTE_SOURCE.

    "none" returns None: status conditions then use the supplied values.
    """
    if config.attribute_source == "http":
        from edunexia_authz.implementations.attributes.http import HttpAttributeSource
        return HttpAttributeSource(
            base_url=config.attribute_source_url,
            token=config.attribute_source_token or None,
        )

    if config.attribute_source == "memory":
        from edunexia_authz.implementations.attributes.memory import MemoryAttributeSource
        return MemoryAttributeSource()

    return None
