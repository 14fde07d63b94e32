"""Import fixtures from sqla_abac.testing for test discovery."""

from sqla_abac.testing._fixtures import (
    abac_config,
    abac_resources,
    abac_store,
    isolated_abac_state,
)

__all__ = ["abac_config", "abac_resources", "abac_store", "isolated_abac_state"]
