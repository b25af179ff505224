"""
QuickMock Runtime Overrides

Sparse, per-instance behaviour patches keyed by route index or resource
name, plus profile activation.

Route overrides are keyed by position in the route list. Reordering or
deleting routes does not migrate overrides: an override whose index no
longer points at the intended route keeps applying to whatever route now
sits there, and one past the end is simply never looked up. Reloading a
server clears all overrides for that reason.
"""

from typing import Any, Dict, Optional, Union

from .models import Profile, RuntimeOverride

OverridePatch = Union[RuntimeOverride, Dict[str, Any]]


def _as_override(patch: OverridePatch) -> RuntimeOverride:
    if isinstance(patch, RuntimeOverride):
        return patch
    return RuntimeOverride.from_dict(patch)


def effective_delay(
    override: RuntimeOverride,
    static_delay: Optional[float],
    server_default: Optional[float] = 0
) -> float:
    """Override delay, else static delay, else server default, else 0 (milliseconds)."""
    for value in (override.delay, static_delay, server_default):
        if value is not None:
            return value
    return 0


def effective_error(override: RuntimeOverride, static_error: Optional[float]) -> float:
    """Override error probability, else static probability, else 0."""
    for value in (override.error, static_error):
        if value is not None:
            return value
    return 0


class OverrideLayer:
    """
    Live override maps for one mock server instance.

    Example:
        layer = OverrideLayer()
        layer.set_route(0, {'delay': 0})
        layer.set_resource('users', {'disabled': True})
        layer.activate(profile)   # replaces both maps
        layer.deactivate()        # empties both maps
    """

    def __init__(self):
        self.routes: Dict[int, RuntimeOverride] = {}
        self.resources: Dict[str, RuntimeOverride] = {}
        self.active_profile: Optional[str] = None

    def route(self, index: int) -> RuntimeOverride:
        """Override for a route index; an empty override if none is set."""
        return self.routes.get(index) or RuntimeOverride()

    def resource(self, name: str) -> RuntimeOverride:
        """Override for a resource name; an empty override if none is set."""
        return self.resources.get(name) or RuntimeOverride()

    def set_route(self, index: int, patch: OverridePatch) -> RuntimeOverride:
        """Merge ``patch`` into the route's override and return the result."""
        merged = self.route(index).merged(_as_override(patch))
        self.routes[index] = merged
        return merged

    def set_resource(self, name: str, patch: OverridePatch) -> RuntimeOverride:
        """Merge ``patch`` into the resource's override and return the result."""
        merged = self.resource(name).merged(_as_override(patch))
        self.resources[name] = merged
        return merged

    def clear_route(self, index: int) -> bool:
        return self.routes.pop(index, None) is not None

    def clear_resource(self, name: str) -> bool:
        return self.resources.pop(name, None) is not None

    def clear(self):
        """Drop every override; the active-profile pointer is left alone."""
        self.routes.clear()
        self.resources.clear()

    def activate(self, profile: Profile):
        """
        Replace the live maps with a profile's override set.

        Both maps are cleared first, so ad-hoc overrides set before
        activation are lost.
        """
        self.clear()

        for index, override in profile.route_overrides.items():
            self.routes[index] = RuntimeOverride(**override.to_dict())
        for name, override in profile.resource_overrides.items():
            self.resources[name] = RuntimeOverride(**override.to_dict())

        for index in profile.disabled_routes:
            self.set_route(index, RuntimeOverride(disabled=True))
        for name in profile.disabled_resources:
            self.set_resource(name, RuntimeOverride(disabled=True))

        self.active_profile = profile.name

    def deactivate(self):
        """Clear both maps and forget the active profile."""
        self.clear()
        self.active_profile = None

    def to_profile(self, name: str, description: str = '') -> Profile:
        """Snapshot the live maps as a new profile."""
        return Profile.from_overrides(name, self.routes, self.resources, description)

    def snapshot(self) -> Dict[str, Any]:
        return {
            'activeProfile': self.active_profile,
            'routes': {str(k): v.to_dict() for k, v in self.routes.items()},
            'resources': {k: v.to_dict() for k, v in self.resources.items()},
        }
