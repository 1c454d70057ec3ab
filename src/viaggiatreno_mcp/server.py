"""ViaggiaTreno MCP Server for Italian railway data."""

import logging
from collections import Counter
from datetime import datetime

from mcp.server import Server
from mcp.types import Tool, TextContent

from .config import ViaggiaTrenoSettings
from .models import Segment, Train, TrainInfo, TrainStopInfo
from .result import Failure
from .station_search import search_stations as catalog_search_stations
from .viaggiatreno_client import ViaggiaTrenoClient

logger = logging.getLogger(__name__)

# Create MCP server
app = Server("viaggiatreno-mcp")


def format_time(timestamp: int | None) -> str:
    """Format an upstream millisecond timestamp as HH:MM."""
    if not timestamp:
        return "--:--"
    return datetime.fromtimestamp(timestamp / 1000).strftime("%H:%M")


def format_train(train: Train) -> str:
    """Format a running train for display."""
    delay_str = f" (+{train.delay}min)" if train.delay > 0 else ""
    if train.in_station:
        status = "in station"
    elif train.departed:
        status = "travelling"
    else:
        status = "not departed"
    return (
        f"{train.train_category} {train.train_number}: {train.station_a} → "
        f"{train.station_b}{delay_str} [{status}, region {train.region_id}]"
    )


def format_stop(stop: TrainStopInfo) -> str:
    """Format a train stop for display."""
    marker = "▶" if stop.is_current_stop else "•"
    arr_time = format_time(stop.actual_arrival or stop.expected_arrival)
    dep_time = format_time(stop.actual_departure or stop.expected_departure)
    delay = stop.delay_at_departure if stop.delay_at_departure is not None else stop.delay_at_arrival
    delay_str = f" (+{delay}min)" if delay else ""
    platform = stop.actual_platform or stop.expected_platform or "?"
    return f"{marker} {stop.name}: {arr_time}→{dep_time}{delay_str} (Pl. {platform})"


def format_segment(segment: Segment) -> str:
    """Format a track segment for display."""
    busy_str = " [busy]" if segment.busy else ""
    return (
        f"{segment.unique_key}: {segment.station_id_a} ↔ "
        f"{segment.station_id_b}{busy_str}"
    )


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    train_lookup_properties = {
        "train_number": {
            "type": "string",
            "description": "Train number (e.g., '9516')",
        },
        "station_id": {
            "type": "string",
            "description": "Departure station id (e.g., 'S07113'); looked up when omitted",
        },
        "match_index": {
            "type": "integer",
            "description": "Which match to use when several trains share the number (default: 0)",
            "default": 0,
        },
    }
    return [
        Tool(
            name="search_stations",
            description="Search for railway stations in Italy by name or city",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Station name, city or id (e.g., 'Milano Centrale', 'Bologna')",
                    },
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="get_station_region",
            description="Get the region id of a station",
            inputSchema={
                "type": "object",
                "properties": {
                    "station_id": {
                        "type": "string",
                        "description": "Station id (e.g., 'S01700')",
                    },
                },
                "required": ["station_id"],
            },
        ),
        Tool(
            name="list_segments",
            description="List the track segments of the network",
            inputSchema={
                "type": "object",
                "properties": {
                    "busy_only": {
                        "type": "boolean",
                        "description": "Only segments reported as occupied (default: true)",
                        "default": True,
                    },
                    "unique": {
                        "type": "boolean",
                        "description": "One record per bidirectional track (default: true)",
                        "default": True,
                    },
                },
            },
        ),
        Tool(
            name="get_running_trains",
            description="Get the trains currently running on the network",
            inputSchema={
                "type": "object",
                "properties": {
                    "category": {
                        "type": "string",
                        "description": "Only trains of this category (e.g., 'FR', 'REG')",
                    },
                    "region_id": {
                        "type": "integer",
                        "description": "Only trains in this region",
                    },
                },
            },
        ),
        Tool(
            name="find_train",
            description="Find the departure stations of trains with a given number",
            inputSchema={
                "type": "object",
                "properties": {
                    "train_number": train_lookup_properties["train_number"],
                },
                "required": ["train_number"],
            },
        ),
        Tool(
            name="get_train_stops",
            description="Get the stops of a train with times, delays and platforms",
            inputSchema={
                "type": "object",
                "properties": train_lookup_properties,
                "required": ["train_number"],
            },
        ),
        Tool(
            name="get_train_info",
            description="Get detailed progress of a train including its current stop",
            inputSchema={
                "type": "object",
                "properties": train_lookup_properties,
                "required": ["train_number"],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    handlers = {
        "search_stations": _search_stations,
        "get_station_region": _get_station_region,
        "list_segments": _list_segments,
        "get_running_trains": _get_running_trains,
        "find_train": _find_train,
        "get_train_stops": _get_train_stops,
        "get_train_info": _get_train_info,
    }
    try:
        handler = handlers.get(name)
        if handler is None:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        async with ViaggiaTrenoClient(ViaggiaTrenoSettings.from_env()) as client:
            result = await handler(client, arguments)

        return [TextContent(type="text", text=result)]
    except Exception as e:
        error_msg = f"Error: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return [TextContent(type="text", text=error_msg)]


async def _search_stations(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """Search for stations in the live station catalog."""
    query = arguments.get("query", "")

    if not query:
        return "Error: 'query' parameter is required"

    catalog = await client.fetch_stations()
    if not catalog:
        return "Error: station catalog is unavailable, try again later"

    stations = catalog_search_stations(catalog, query)

    if not stations:
        return f"No stations found matching '{query}'"

    lines = [f"Found {len(stations)} station(s) matching '{query}':\n"]
    for station in stations[:10]:  # Limit to 10 results
        lat, lon = station.location
        lines.append(
            f"• {station.name} ({station.city}) - id {station.station_id} - "
            f"Coordinates: {lat}, {lon}"
        )

    if len(stations) > 10:
        lines.append(f"\n... and {len(stations) - 10} more")

    return "\n".join(lines)


async def _get_station_region(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """Get the region of a station."""
    station_id = arguments.get("station_id", "")

    if not station_id:
        return "Error: 'station_id' parameter is required"

    region_id = await client.region_id_for_station(station_id)
    if region_id == -1:
        return f"Error fetching region of station {station_id}"
    return f"Station {station_id} is in region {region_id}"


async def _list_segments(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """List track segments."""
    busy_only = arguments.get("busy_only", True)
    unique = arguments.get("unique", True)

    segments = await client.fetch_segments(unique=unique, busy_only=busy_only)

    if not segments:
        return "No segments found."

    kind = "busy segments" if busy_only else "segments"
    lines = [f"{len(segments)} {kind}:\n"]
    for segment in segments[:25]:
        lines.append(f"  {format_segment(segment)}")

    if len(segments) > 25:
        lines.append(f"\n  ... and {len(segments) - 25} more")

    return "\n".join(lines)


async def _get_running_trains(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """Get running trains, optionally filtered by category or region."""
    category = arguments.get("category")
    region_id = arguments.get("region_id")

    result = await client.fetch_all_trains()
    if isinstance(result, Failure):
        return f"Error fetching trains: {result}"

    trains = result.value
    if category:
        trains = [t for t in trains if t.train_category.upper() == category.upper()]
    if region_id is not None:
        trains = [t for t in trains if t.region_id == int(region_id)]

    if not trains:
        return "No running trains found."

    by_category = Counter(t.train_category for t in trains)
    summary = ", ".join(f"{cat}: {n}" for cat, n in by_category.most_common())
    delayed = sum(1 for t in trains if t.delay > 0)

    lines = [
        f"{len(trains)} running train(s) ({summary}), {delayed} delayed:\n"
    ]
    for train in sorted(trains, key=lambda t: t.delay, reverse=True)[:20]:
        lines.append(f"  {format_train(train)}")

    if len(trains) > 20:
        lines.append(f"\n  ... and {len(trains) - 20} more")

    return "\n".join(lines)


async def _find_train(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """Find candidate departure stations for a train number."""
    train_number = arguments.get("train_number", "")

    if not train_number:
        return "Error: 'train_number' parameter is required"

    result = await client.autocomplete(train_number)
    if isinstance(result, Failure):
        return f"Error finding train: {result}"

    if not result.value:
        return f"No trains found with number {train_number}"

    lines = [f"Trains with number {train_number}:"]
    for index, match in enumerate(result.value):
        lines.append(
            f"  [{index}] {match.train_number} from {match.station_a} ({match.station_id_a})"
        )
    return "\n".join(lines)


async def _get_train_stops(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """Get the stops of a train."""
    train_number = arguments.get("train_number", "")

    if not train_number:
        return "Error: 'train_number' parameter is required"

    stops = await client.fetch_stop_info(
        train_number,
        station_id=arguments.get("station_id"),
        match_index=int(arguments.get("match_index", 0)),
    )

    if not stops:
        return f"No stops found for train {train_number}"

    lines = [f"Train {train_number} stops ({len(stops)} total):"]
    for stop in stops:
        lines.append(f"  {format_stop(stop)}")
    return "\n".join(lines)


def format_train_info(train_number: str, info: TrainInfo) -> str:
    """Format the full progress of a train for display."""
    title = f"{info.train_type} {train_number}" if info.train_type else f"Train {train_number}"
    lines = [f"{title}: {info.name_a} → {info.name_b}"]

    if info.has_arrived:
        lines.append("  Arrived at destination")
    elif info.last_detection and info.last_detection_station_name:
        lines.append(
            f"  Last detected at {info.last_detection_station_name} "
            f"at {format_time(info.last_detection)}"
        )

    current = info.current_stop
    if current:
        lines.append(f"  Current stop: {current.name}")

    lines.append(f"\n  Stops ({len(info.stops)} total):")
    for stop in info.stops:
        lines.append(f"    {format_stop(stop)}")

    return "\n".join(lines)


async def _get_train_info(client: ViaggiaTrenoClient, arguments: dict) -> str:
    """Get train information."""
    train_number = arguments.get("train_number", "")

    if not train_number:
        return "Error: 'train_number' parameter is required"

    result = await client.fetch_train_info(
        train_number,
        station_id=arguments.get("station_id"),
        match_index=int(arguments.get("match_index", 0)),
    )
    if isinstance(result, Failure):
        return f"Error fetching train info: {result}"

    return format_train_info(train_number, result.value)


async def main():
    """Run the MCP server."""
    from mcp.server.stdio import stdio_server

    logging.basicConfig(level=logging.INFO)

    async with stdio_server() as (read_stream, write_stream):
        init_options = app.create_initialization_options()
        await app.run(read_stream, write_stream, init_options)


def cli():
    """Entry point for console script."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    cli()
