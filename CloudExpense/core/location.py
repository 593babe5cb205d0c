"""Device location lookup and reverse geocoding.

A :class:`LocationProvider` reports whether location access was granted and the current
coordinates. :class:`LocationService` combines a provider with a :class:`Geocoder` to turn the
coordinates into a readable address, degrading to ``"Unknown Location"`` when the geocoder
finds nothing and to the raw coordinates when it fails.
"""
import abc
import logging
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional, Tuple

import requests

from .result import Result
from ..status import status

NOMINATIM_URL: str = 'https://nominatim.openstreetmap.org/reverse'
USER_AGENT: str = 'CloudExpense'
REQUEST_TIMEOUT: int = 10

UNKNOWN_LOCATION: str = 'Unknown Location'


class GeocoderError(Exception):
    """Raised by a geocoder when the lookup itself fails."""


@dataclass(frozen=True)
class LocationData:
    latitude: float
    longitude: float
    address: str = ''


class Address(NamedTuple):
    name: str = ''
    locality: str = ''
    region: str = ''
    country: str = ''

    def format(self) -> str:
        """Join the non-empty components with commas."""
        return ', '.join(c for c in self if c)


def format_coordinates(latitude: float, longitude: float) -> str:
    return f'Lat: {latitude}, Lon: {longitude}'


class LocationProvider(abc.ABC):

    @abc.abstractmethod
    def has_permission(self) -> bool:
        ...

    @abc.abstractmethod
    def current_position(self) -> Optional[Tuple[float, float]]:
        """The current ``(latitude, longitude)``, or None when no fix is available."""


class StaticLocationProvider(LocationProvider):
    """Reports a fixed position, as configured in the ``location`` settings section.

    Args:
        enabled: Whether location access is granted.
        latitude: The configured latitude, or None.
        longitude: The configured longitude, or None.
    """

    def __init__(self, enabled: bool = False, latitude: Optional[float] = None,
                 longitude: Optional[float] = None) -> None:
        self.enabled = enabled
        self.latitude = latitude
        self.longitude = longitude

    @classmethod
    def from_settings(cls) -> 'StaticLocationProvider':
        from ..settings import lib
        config: Dict[str, Any] = lib.settings.get_section('location')
        return cls(
            enabled=bool(config.get('enabled', False)),
            latitude=config.get('latitude'),
            longitude=config.get('longitude'),
        )

    def has_permission(self) -> bool:
        return self.enabled

    def current_position(self) -> Optional[Tuple[float, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return float(self.latitude), float(self.longitude)


class Geocoder(abc.ABC):

    @abc.abstractmethod
    def reverse(self, latitude: float, longitude: float) -> Optional[Address]:
        """Look up the address at the given coordinates.

        Returns:
            The address, or None when there is nothing at the coordinates.

        Raises:
            GeocoderError: If the lookup fails.
        """


class NominatimGeocoder(Geocoder):
    """Reverse geocoder using the OpenStreetMap Nominatim API."""

    def __init__(self, url: str = NOMINATIM_URL, language: str = 'en') -> None:
        self.url = url
        self.language = language

    def reverse(self, latitude: float, longitude: float) -> Optional[Address]:
        params = {'format': 'jsonv2', 'lat': latitude, 'lon': longitude, 'accept-language': self.language}
        try:
            response = requests.get(self.url, params=params, headers={'User-Agent': USER_AGENT},
                                    timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as ex:
            raise GeocoderError(f'Reverse geocoding failed: {ex}') from ex

        if not data or 'error' in data:
            return None

        address = data.get('address', {})
        return Address(
            name=data.get('name') or address.get('road', ''),
            locality=address.get('city') or address.get('town') or address.get('village', ''),
            region=address.get('state', ''),
            country=address.get('country', ''),
        )


class LocationService:
    """Resolves the current location to coordinates plus a readable address."""

    def __init__(self, provider: LocationProvider, geocoder: Optional[Geocoder] = None) -> None:
        self.provider = provider
        self.geocoder = geocoder

    def has_location_permission(self) -> bool:
        return self.provider.has_permission()

    def get_current_location(self) -> Result[LocationData]:
        try:
            if not self.provider.has_permission():
                raise status.LocationPermissionError
            position = self.provider.current_position()
            if position is None:
                raise status.LocationUnavailableError
        except status.BaseStatusException as ex:
            return Result.failure(ex)

        latitude, longitude = position
        return Result.success(LocationData(latitude, longitude, self.get_address(latitude, longitude)))

    def get_address(self, latitude: float, longitude: float) -> str:
        if self.geocoder is None:
            return format_coordinates(latitude, longitude)
        try:
            address = self.geocoder.reverse(latitude, longitude)
        except GeocoderError as ex:
            logging.warning(f'{ex}, using coordinates.')
            return format_coordinates(latitude, longitude)

        if address is None or not address.format():
            return UNKNOWN_LOCATION
        return address.format()
