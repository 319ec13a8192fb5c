# =============================================================================
# File: titan/infra/event_bus/event_decorators.py
# Description: Auto-registration decorators for domain events.
#              Lets intake handlers resolve a raw payload to its event model
#              by event_type without a hand-maintained mapping.
# =============================================================================

import inspect
import logging
import threading
from typing import Type, Dict, Any, Optional, Set

from pydantic import BaseModel

log = logging.getLogger("titan.event_bus.decorators")

_REGISTRY_LOCK = threading.Lock()

# event_type -> model class
_AUTO_REGISTERED_EVENTS: Dict[str, Type[BaseModel]] = {}

# domain -> event types
_DOMAIN_EVENTS: Dict[str, Set[str]] = {}

_EVENT_METADATA: Dict[str, Dict[str, Any]] = {}


def domain_event(
        *,
        category: str = "domain",
        description: Optional[str] = None,
):
    """
    Decorator for auto-registering domain events.

    Usage:
        @domain_event(category="business")
        class BoostSubmitted(BaseEvent):
            event_type: Literal["BoostSubmitted"] = "BoostSubmitted"
            workspace_id: str

    Args:
        category: Event category ("domain", "business", "feed")
        description: Optional description for documentation
    """

    def decorator(event_class: Type[BaseModel]) -> Type[BaseModel]:
        if not issubclass(event_class, BaseModel):
            raise TypeError(
                f"@domain_event can only be applied to Pydantic BaseModel classes. "
                f"{event_class.__name__} is not a BaseModel."
            )

        event_type = None
        field_info = event_class.model_fields.get('event_type')
        if field_info is not None and isinstance(field_info.default, str):
            event_type = field_info.default
        if not event_type:
            event_type = event_class.__name__

        # Domain is the package after "titan" (e.g. titan.messaging.events -> messaging)
        module = inspect.getmodule(event_class)
        module_name = module.__name__ if module else ""
        parts = module_name.split(".")
        domain = parts[1] if len(parts) > 2 and parts[0] == "titan" else "unknown"

        with _REGISTRY_LOCK:
            existing_class = _AUTO_REGISTERED_EVENTS.get(event_type)
            if existing_class is event_class:
                return event_class
            if existing_class is not None:
                log.warning(
                    f"Event type '{event_type}' collision: "
                    f"already registered by {existing_class.__module__}.{existing_class.__name__}, "
                    f"now registering {event_class.__module__}.{event_class.__name__}"
                )

            _AUTO_REGISTERED_EVENTS[event_type] = event_class
            _DOMAIN_EVENTS.setdefault(domain, set()).add(event_type)
            _EVENT_METADATA[event_type] = {
                "event_class": event_class,
                "category": category,
                "domain": domain,
                "module": module_name,
                "description": description or event_class.__doc__,
            }

            log.debug(f"Auto-registered event: {event_type} (domain={domain}, category={category})")

        return event_class

    return decorator


# =============================================================================
# Registry Access Functions
# =============================================================================

def get_event_class(event_type: str) -> Optional[Type[BaseModel]]:
    """Resolve an event_type string to its registered model class"""
    return _AUTO_REGISTERED_EVENTS.get(event_type)


def get_domain_events(domain: str) -> Set[str]:
    """All event types registered by one domain package"""
    return _DOMAIN_EVENTS.get(domain, set()).copy()


def get_event_metadata(event_type: str) -> Optional[Dict[str, Any]]:
    """Registration metadata for an event type"""
    return _EVENT_METADATA.get(event_type)
