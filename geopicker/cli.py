"""Command-line interface for the geocoding proxy."""

import asyncio
import json
from typing import Any, Optional

import click
import httpx

from geopicker.core.config import settings
from geopicker.core.logging import configure_logging
from geopicker.geocoding.errors import GeocoderConfigurationError, GeocodingError
from geopicker.geocoding.gateway import GeocodingGateway
from geopicker.geocoding.models import Coordinate, SearchOptions
from geopicker.picker.geolocation import GeolocationAcquirer, IpApiPositionSource


def _run_with_gateway(operation: Any) -> Any:
    async def runner() -> Any:
        gateway = GeocodingGateway.from_settings(settings)
        try:
            return await operation(gateway)
        finally:
            await gateway.aclose()

    try:
        return asyncio.run(runner())
    except GeocoderConfigurationError as e:
        raise click.ClickException(str(e)) from e
    except GeocodingError as e:
        raise click.ClickException(f"{e.code}: {e}") from e


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Geocoding proxy for the checkout location picker."""
    configure_logging(
        level="DEBUG" if verbose else settings.LOG_LEVEL,
        json_logs=settings.JSON_LOGS,
    )


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", "-p", default=8000, type=int, help="Port to listen on")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the /geocode proxy API."""
    import uvicorn

    uvicorn.run("geopicker.main:app", host=host, port=port, reload=reload)


@cli.command()
@click.argument("lat", type=float)
@click.argument("lng", type=float)
@click.option("--raw", is_flag=True, help="Print the provider payload unparsed")
def reverse(lat: float, lng: float, raw: bool) -> None:
    """Resolve LAT LNG to an address."""

    async def lookup(gateway: GeocodingGateway) -> Any:
        if raw:
            return await gateway.fetch_reverse(lat, lng)
        address = await gateway.reverse_lookup(lat, lng)
        return address.model_dump(exclude={"raw"})

    _echo_json(_run_with_gateway(lookup))


@cli.command()
@click.argument("query")
@click.option(
    "--limit",
    "-l",
    default=settings.GEOCODING_SEARCH_LIMIT,
    type=int,
    help="Maximum number of results (1-10)",
)
@click.option("--country", "-c", default=None, help="Comma-separated country codes")
@click.option("--lat", type=float, default=None, help="Bias latitude")
@click.option("--lng", type=float, default=None, help="Bias longitude")
def search(
    query: str,
    limit: int,
    country: Optional[str],
    lat: Optional[float],
    lng: Optional[float],
) -> None:
    """Search for addresses matching QUERY."""
    if (lat is None) != (lng is None):
        raise click.UsageError("--lat and --lng must be given together")
    bias = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None
    options = SearchOptions(limit=limit, country_codes=country, bias=bias)

    async def lookup(gateway: GeocodingGateway) -> Any:
        candidates = await gateway.forward_lookup(query, options)
        return [c.model_dump(exclude={"raw"}) for c in candidates]

    _echo_json(_run_with_gateway(lookup))


@cli.command()
@click.option("--ip", default=None, help="Locate this address instead of the caller")
def locate(ip: Optional[str]) -> None:
    """Approximate position from IP, falling back to the default center."""
    default = Coordinate(lat=settings.PICKER_DEFAULT_LAT, lng=settings.PICKER_DEFAULT_LNG)

    async def run() -> Coordinate:
        async with httpx.AsyncClient() as client:
            acquirer = GeolocationAcquirer(
                IpApiPositionSource(client, ip=ip, url=settings.IP_GEOLOCATION_URL),
                high_accuracy_timeout=settings.GEOLOCATION_HIGH_ACCURACY_TIMEOUT,
                low_accuracy_timeout=settings.GEOLOCATION_LOW_ACCURACY_TIMEOUT,
            )
            return await acquirer.acquire_or_default(default)

    _echo_json(asyncio.run(run()).model_dump())


if __name__ == "__main__":
    cli()
