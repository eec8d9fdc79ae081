"""Monorepo root detection.

The ``DetectionRegistry`` owns the set of registered providers and walks the
filesystem upward from a starting path, asking each provider in priority
order whether it recognizes the directory as a monorepo root.

Results are cached under every directory visited during the walk, so a
later lookup from any of them is a single cache hit. Negative results are
cached too, with a shorter TTL so a newly added marker is noticed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from envscope.core.cache import DetectionCache
from envscope.core.errors import ConfigurationError, ProviderContractError
from envscope.core.models import NOT_FOUND, DetectionInfo, DetectionResult
from envscope.core.path_utils import search_directory
from envscope.core.utils import is_readable_file
from envscope.ports.providers import MonorepoProvider
from envscope.providers import BUILTIN_PROVIDERS

logger = logging.getLogger(__name__)

DEFAULT_NEGATIVE_TTL_MS = 60_000
DEFAULT_MAX_ITERATIONS = 10


def check_provider_contract(provider: Any) -> str:
    """Verify the minimum a provider needs to take part in detection.

    Returns:
        The provider name.

    Raises:
        ProviderContractError: If ``name``, ``detect`` or ``priority`` is unusable.
    """
    name = getattr(provider, "name", None)
    if not isinstance(name, str) or not name:
        raise ProviderContractError("Invalid provider: must have a name")
    if not callable(getattr(provider, "detect", None)):
        raise ProviderContractError("Provider must implement detect()", provider_name=name)
    if not isinstance(getattr(provider, "priority", None), int):
        raise ProviderContractError("Provider priority must be an integer", provider_name=name)
    return name


@dataclass
class _Registration:
    provider: MonorepoProvider
    owner: str | None
    sequence: int


class DetectionRegistry:
    """Registry of providers plus the upward detection walk.

    Example:
        registry = DetectionRegistry(DetectionCache())
        registry.load_builtin_providers(["turborepo", "nx"])
        result = registry.detect_monorepo("/repo/apps/web/src/index.ts")
        if result.found:
            print(result.root_path, result.provider.name)
    """

    def __init__(
        self,
        cache: DetectionCache,
        negative_ttl: float = DEFAULT_NEGATIVE_TTL_MS,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        """Initialize the registry.

        Args:
            cache: Shared detection cache.
            negative_ttl: TTL in milliseconds for "no monorepo" results.
            max_iterations: Maximum directories visited by one walk.
        """
        self._cache = cache
        self._negative_ttl = negative_ttl
        self._max_iterations = max_iterations
        self._registrations: dict[str, _Registration] = {}
        self._sequence = 0

    @property
    def cache(self) -> DetectionCache:
        return self._cache

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_provider(self, provider: MonorepoProvider, owner: str | None = None) -> None:
        """Register a provider, replacing any provider with the same name.

        Args:
            provider: Provider to register.
            owner: Ownership tag (e.g. a plugin name) for bulk removal.

        Raises:
            ProviderContractError: If the provider has no name or no
                callable ``detect``.
        """
        name = check_provider_contract(provider)
        if name in self._registrations:
            logger.debug("Replacing registered provider '%s'", name)
        self._sequence += 1
        self._registrations[name] = _Registration(provider, owner, self._sequence)
        logger.debug("Registered provider '%s' (priority=%d)", name, provider.priority)

    def unregister_provider(self, name: str) -> bool:
        """Remove a provider by name.

        Returns:
            True if a provider was removed.
        """
        removed = self._registrations.pop(name, None) is not None
        if removed:
            logger.debug("Unregistered provider '%s'", name)
        return removed

    def unregister_owner(self, owner: str) -> list[str]:
        """Remove every provider registered under ``owner``.

        Returns:
            Names of the removed providers.
        """
        names = [name for name, reg in self._registrations.items() if reg.owner == owner]
        for name in names:
            self.unregister_provider(name)
        return names

    def clear_providers(self) -> None:
        self._registrations.clear()

    def get_provider(self, name: str) -> MonorepoProvider | None:
        registration = self._registrations.get(name)
        return registration.provider if registration else None

    def get_providers(self) -> list[MonorepoProvider]:
        """All providers in detection order (priority, then registration order)."""
        ordered = sorted(
            self._registrations.values(), key=lambda r: (r.provider.priority, r.sequence)
        )
        return [r.provider for r in ordered]

    def get_owner(self, name: str) -> str | None:
        registration = self._registrations.get(name)
        return registration.owner if registration else None

    def load_builtin_providers(
        self, providers: Iterable[str | Mapping[str, Any]] | None = None
    ) -> list[MonorepoProvider]:
        """Instantiate and register built-in providers.

        Args:
            providers: Built-in names, or mappings with a ``name`` plus
                configuration overrides. Defaults to every built-in.

        Returns:
            The registered provider instances.

        Raises:
            ConfigurationError: If a name is not a built-in provider or an
                override is invalid.
        """
        if providers is None:
            providers = list(BUILTIN_PROVIDERS)

        loaded = []
        for entry in providers:
            overrides: dict[str, Any] = {}
            if isinstance(entry, Mapping):
                overrides = dict(entry)
                name = overrides.get("name")
            else:
                name = entry
            provider_cls = BUILTIN_PROVIDERS.get(name) if isinstance(name, str) else None
            if provider_cls is None:
                raise ConfigurationError(
                    f"Unknown built-in provider: {name!r}",
                    errors=[f"available: {', '.join(BUILTIN_PROVIDERS)}"],
                )
            provider = provider_cls(overrides or None)
            self.register_provider(provider)
            loaded.append(provider)
        return loaded

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect_monorepo(self, path: str | Path | None = None) -> DetectionResult:
        """Find the monorepo root containing ``path``.

        Args:
            path: File or directory. Defaults to the current directory.

        Returns:
            The detection result; ``NOT_FOUND`` when no provider matches.
        """
        start = search_directory(path)
        cache_key = f"detection:{start}"

        cached = self._cache.get_detection(cache_key)
        if cached is not None:
            return cached

        if not self._registrations:
            return NOT_FOUND

        providers = self.get_providers()
        checked: list[Path] = []
        current = start

        for _ in range(self._max_iterations):
            if current in checked:
                break
            checked.append(current)

            for provider in providers:
                found, confidence, metadata = self._run_detect(provider, current)
                if found and confidence > 0:
                    result = DetectionResult(
                        root_path=current,
                        provider=provider,
                        detection_info=DetectionInfo(
                            confidence=confidence, metadata=dict(metadata or {})
                        ),
                    )
                    ttl = self._provider_ttl(provider)
                    self._store(cache_key, checked, result, ttl)
                    logger.debug(
                        "Detected %s monorepo at %s (confidence=%d) from %s",
                        provider.name,
                        current,
                        confidence,
                        start,
                    )
                    return result

            parent = current.parent
            if parent == current:
                break
            current = parent

        self._store(cache_key, checked, NOT_FOUND, self._negative_ttl)
        logger.debug("No monorepo found from %s (%d directories checked)", start, len(checked))
        return NOT_FOUND

    def detect_with_provider(
        self, provider_name: str, path: str | Path | None = None
    ) -> DetectionResult:
        """Walk upward from ``path`` asking a single provider.

        Returns:
            The detection result; ``NOT_FOUND`` if the provider is unknown
            or never matches.
        """
        provider = self.get_provider(provider_name)
        if provider is None:
            return NOT_FOUND

        start = search_directory(path)
        cache_key = f"detection:{provider_name}:{start}"
        cached = self._cache.get_detection(cache_key)
        if cached is not None:
            return cached

        current = start
        for _ in range(self._max_iterations):
            found, confidence, metadata = self._run_detect(provider, current)
            if found and confidence > 0:
                result = DetectionResult(
                    current, provider, DetectionInfo(confidence, dict(metadata or {}))
                )
                self._cache.set_detection(cache_key, result, self._provider_ttl(provider))
                return result
            parent = current.parent
            if parent == current:
                break
            current = parent

        self._cache.set_detection(cache_key, NOT_FOUND, self._negative_ttl)
        return NOT_FOUND

    def applicable_providers(self, path: str | Path) -> list[MonorepoProvider]:
        """Providers whose quick markers exist directly in ``path``.

        Providers without quick markers are always considered applicable.
        """
        directory = Path(path)
        applicable = []
        for provider in self.get_providers():
            get_markers = getattr(provider, "get_quick_markers", None)
            markers = get_markers() if callable(get_markers) else []
            if not markers or any(is_readable_file(directory / m) for m in markers):
                applicable.append(provider)
        return applicable

    def _run_detect(self, provider: MonorepoProvider, path: Path) -> tuple[bool, int, Any]:
        try:
            found, confidence, metadata = provider.detect(path)
        except Exception:
            logger.warning(
                "Provider '%s' failed while inspecting %s", provider.name, path, exc_info=True
            )
            return False, 0, None
        return bool(found), int(confidence or 0), metadata

    def _provider_ttl(self, provider: MonorepoProvider) -> float | None:
        get_duration = getattr(provider, "get_cache_duration", None)
        return get_duration() if callable(get_duration) else None

    def _store(
        self, cache_key: str, checked: list[Path], result: DetectionResult, ttl: float | None
    ) -> None:
        self._cache.set_detection(cache_key, result, ttl)
        for directory in checked:
            key = f"detection:{directory}"
            if key != cache_key:
                self._cache.set_detection(key, result, ttl)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        providers = {
            name: {"priority": reg.provider.priority, "owner": reg.owner}
            for name, reg in self._registrations.items()
        }
        return {"providers": providers, "cache": self._cache.get_stats().to_dict()}

    def clear_cache(self) -> None:
        self._cache.clear_all()

    def configure(self, cache: Mapping[str, Any] | None = None) -> None:
        """Apply cache settings (``max_entries``, ``default_ttl``, ``cleanup_interval``)."""
        if cache:
            self._cache.configure(**dict(cache))

    @property
    def negative_ttl(self) -> float:
        return self._negative_ttl
