# pylint: disable=broad-except
"""Message bus for the epidemiological analysis service."""

from __future__ import annotations
import logging
from typing import List, Dict, Callable, Type, Union, TYPE_CHECKING

from shared.domain.commands import Command, Event
from epi_analysis.domain import commands, events
from epi_analysis.service_layer import handlers

if TYPE_CHECKING:
    from epi_analysis.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

Message = Union[Command, Event]


def handle(
    message: Message,
    uow: AbstractUnitOfWork,
):
    """Handle message (command or event) and return the command results."""
    results = []
    queue = [message]

    while queue:
        message = queue.pop(0)

        if isinstance(message, Event):
            handle_event(message, queue, uow)
        elif isinstance(message, Command):
            cmd_result = handle_command(message, queue, uow)
            results.append(cmd_result)
        else:
            raise Exception(f"{message} was not an Event or Command")

    return results


def handle_event(
    event: Event,
    queue: List[Message],
    uow: AbstractUnitOfWork,
):
    for handler in EVENT_HANDLERS[type(event)]:
        try:
            logger.debug(f"handling event {event} with handler {handler}")
            handler(event, uow=uow)
            queue.extend(uow.collect_new_events())
        except Exception:
            logger.exception("Exception handling event %s", event)
            continue


def handle_command(
    command: Command,
    queue: List[Message],
    uow: AbstractUnitOfWork,
):
    logger.debug(f"handling command {command}")
    try:
        handler = COMMAND_HANDLERS[type(command)]
        result = handler(command, uow=uow)
        queue.extend(uow.collect_new_events())
        return result
    except Exception:
        logger.exception("Exception handling command %s", command)
        raise


EVENT_HANDLERS = {
    events.AnomalyDetected: [handlers.publish_anomaly_event],
    events.AggregationsRefreshed: [handlers.publish_aggregations_refreshed],
}  # type: Dict[Type[Event], List[Callable]]

COMMAND_HANDLERS = {
    commands.AnalyzeObservation: handlers.analyze_observation,
    commands.AggregateDay: handlers.aggregate_day,
    commands.AggregateRange: handlers.aggregate_range,
    commands.RebuildAggregations: handlers.rebuild_aggregations,
    commands.AnalyzeAnomaly: handlers.analyze_anomaly,
    commands.ScanAnomalies: handlers.scan_anomalies,
}  # type: Dict[Type[Command], Callable]
