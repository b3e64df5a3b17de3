"""
Message Bus

Central hub for routing commands and events to their handlers.
Commands have exactly one handler; events fan out to any number.
"""

from typing import Any, Callable, Dict, Iterable, List, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class MessageBus:
    """
    Message bus for commands and events

    Commands: One handler per command (1:1)
    Events: Multiple handlers per event (1:N)
    """

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._command_handlers: Dict[Type, Callable] = {}

    def register_event_handler(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None]
    ):
        handlers = self._event_handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(f"Registered event handler for {event_type.__name__}")

    def register_command_handler(
        self,
        command_type: Type,
        handler: Callable[[Any], Any]
    ):
        """
        Register a command handler

        Only one handler can be registered per command type.
        """
        if command_type in self._command_handlers:
            raise ValueError(
                f"Handler for {command_type.__name__} is already registered. "
                "Commands can have only one handler."
            )
        self._command_handlers[command_type] = handler
        logger.debug(f"Registered command handler for {command_type.__name__}")

    def handle_command(self, command: Any) -> Any:
        """
        Handle a command

        Returns the result from the command handler; domain errors
        propagate unchanged to the caller.
        """
        command_type = type(command)
        handler = self._command_handlers.get(command_type)

        if not handler:
            raise ValueError(
                f"No handler registered for command {command_type.__name__}"
            )

        logger.info(f"Handling command: {command_type.__name__}")
        try:
            return handler(command)
        except Exception as e:
            logger.warning(f"Command {command_type.__name__} rejected: {e}")
            raise

    def publish_events(self, events: Iterable[DomainEvent]):
        """
        Publish domain events

        Every handler registered for the event's class (or a base class)
        is called. Handler errors are logged and do not stop other handlers:
        the state change that produced the event is already committed.
        """
        for event in events:
            handlers = [
                handler
                for event_type, registered in self._event_handlers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]

            if not handlers:
                logger.debug(f"No handlers registered for event {type(event).__name__}")
                continue

            logger.info(f"Publishing event: {type(event).__name__} (ID: {event.event_id})")

            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {getattr(handler, '__name__', handler)} "
                        f"for event {type(event).__name__}: {e}",
                        exc_info=True
                    )


# Global message bus instance
message_bus = MessageBus()
