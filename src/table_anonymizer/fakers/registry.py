#!/usr/bin/env python3
"""
Value Generator Registry
Resolves generators by type name and adapts externally registered services.
"""

import logging
import random
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.errors import ConfigurationError
from . import composite, standard
from .base import FakerInterface, FakerType, create_faker


GeneratorFactory = Callable[['FakerRegistry'], FakerInterface]


BUILTIN_GENERATORS: Dict[str, GeneratorFactory] = {
    FakerType.COPY.value: composite.CopyFaker,
    FakerType.PATTERN_BASED.value: composite.PatternBasedFaker,
    FakerType.HASH_PRESERVE.value: composite.HashPreserveFaker,
    FakerType.CONSTANT.value: composite.ConstantFaker,
    FakerType.NULL.value: composite.NullFaker,
    FakerType.MAP.value: composite.MapFaker,
    FakerType.SHUFFLE.value: composite.ShuffleFaker,
    FakerType.ENUM.value: composite.EnumFaker,
    FakerType.MASKING.value: composite.MaskingFaker,
    FakerType.NAME_FALLBACK.value: composite.NameFallbackFaker,
    FakerType.EMAIL.value: standard.EmailFaker,
    FakerType.NAME.value: standard.NameFaker,
    FakerType.SURNAME.value: standard.SurnameFaker,
    FakerType.AGE.value: standard.AgeFaker,
    FakerType.PHONE.value: standard.PhoneFaker,
    FakerType.IBAN.value: standard.IbanFaker,
    FakerType.CREDIT_CARD.value: standard.CreditCardFaker,
    FakerType.ADDRESS.value: standard.AddressFaker,
    FakerType.DATE.value: standard.DateFaker,
    FakerType.USERNAME.value: standard.UsernameFaker,
    FakerType.URL.value: standard.UrlFaker,
    FakerType.COMPANY.value: standard.CompanyFaker,
    FakerType.PASSWORD.value: standard.PasswordFaker,
    FakerType.IP_ADDRESS.value: standard.IpAddressFaker,
    FakerType.MAC_ADDRESS.value: standard.MacAddressFaker,
    FakerType.UUID.value: standard.UuidFaker,
    FakerType.HASH.value: standard.HashFaker,
    FakerType.COORDINATE.value: standard.CoordinateFaker,
    FakerType.COLOR.value: standard.ColorFaker,
    FakerType.BOOLEAN.value: standard.BooleanFaker,
    FakerType.NUMERIC.value: standard.NumericFaker,
    FakerType.FILE.value: standard.FileFaker,
    FakerType.JSON.value: standard.JsonFaker,
    FakerType.TEXT.value: standard.TextFaker,
    FakerType.COUNTRY.value: standard.CountryFaker,
    FakerType.LANGUAGE.value: standard.LanguageFaker,
    FakerType.DNI_CIF.value: standard.DniCifFaker,
    FakerType.UTM.value: standard.UtmFaker,
    FakerType.HTML.value: standard.HtmlFaker
}


class FakerRegistry:
    """
    Resolves value generators by type name.

    All generators created by one registry share its Faker instance and
    random source, so a seeded registry yields reproducible runs.
    """

    def __init__(self, locale: str = "en_US", seed: Optional[int] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.locale = locale
        self.seed = seed
        self.fake = create_faker(locale, seed)
        self.random = random.Random(seed)

        self._factories: Dict[str, GeneratorFactory] = dict(BUILTIN_GENERATORS)
        self._services: Dict[str, Any] = {}
        self._instances: Dict[Tuple[str, Optional[str]], FakerInterface] = {}

    def fork(self, seed: Optional[int] = None) -> 'FakerRegistry':
        """
        Independent registry with the same generator types and services.

        The fork has its own Faker instance, random source and generator
        instances, so it can be used from another thread without sharing
        state with this registry.
        """
        forked = FakerRegistry(self.locale, seed)
        forked._factories = dict(self._factories)
        forked._services = dict(self._services)
        return forked

    def register(self, name: str, factory: GeneratorFactory) -> None:
        """Register (or replace) a generator type; factory is called with this registry."""
        if not name or name == FakerType.SERVICE.value:
            raise ConfigurationError(f"Cannot register a generator under the name '{name}'")

        self._factories[name] = factory
        self._instances = {key: value for key, value in self._instances.items() if key[0] != name}
        self.logger.debug(f"Registered generator '{name}'")

    def register_service(self, name: str, capability: Any) -> None:
        """Register an external capability usable with ``type: service``."""
        # Fails early when the capability cannot act as a generator
        composite.ServiceFaker.adapt(capability, name)
        self._services[name] = capability
        self._instances.pop((FakerType.SERVICE.value, name), None)
        self.logger.debug(f"Registered service '{name}'")

    def create(self, faker_type: str, service: Optional[str] = None) -> FakerInterface:
        """Resolve a generator; unknown types and services raise ConfigurationError."""
        key = (faker_type, service if faker_type == FakerType.SERVICE.value else None)
        if key in self._instances:
            return self._instances[key]

        if faker_type == FakerType.SERVICE.value:
            generator = self._create_service(service)
        elif faker_type in self._factories:
            generator = self._factories[faker_type](self)
            if not isinstance(generator, FakerInterface):
                raise ConfigurationError(
                    f"Factory for generator '{faker_type}' returned {type(generator).__name__}, "
                    f"expected a FakerInterface"
                )
        else:
            raise ConfigurationError(
                f"Unknown generator type '{faker_type}'. Available: {', '.join(self.available_types())}"
            )

        self._instances[key] = generator
        return generator

    def _create_service(self, service: Optional[str]) -> FakerInterface:
        if not service:
            raise ConfigurationError("Generator type 'service' requires a service name")
        if service not in self._services:
            raise ConfigurationError(f"Service '{service}' is not registered")
        return composite.ServiceFaker(self._services[service], service, registry=self)

    def available_types(self) -> List[str]:
        return sorted(list(self._factories) + [FakerType.SERVICE.value])

    def services(self) -> List[str]:
        return sorted(self._services)

