"""Input validation for SportsGameOdds API responses."""

from typing import Any, Dict
import logging

logger = logging.getLogger('odds_ingest')


def validate_events_envelope(body: Any) -> bool:
    """Validate the top-level envelope of an events response.

    The provider wraps every page in ``{"success": true, "data": [...]}``
    with an optional ``nextCursor``.

    Args:
        body: Decoded JSON body

    Returns:
        True if the envelope is usable, False otherwise

    Validation Rules:
        - Must be a dictionary
        - ``success`` must be truthy
        - ``data`` must be a list

    Examples:
        >>> validate_events_envelope({"success": True, "data": []})
        True
        >>> validate_events_envelope({"success": False, "error": "bad key"})
        False
    """
    if not isinstance(body, dict):
        logger.error("Events response is not a dictionary")
        return False

    if not body.get("success"):
        logger.error(f"Events response reported failure: {body.get('error', 'no error message')}")
        return False

    if not isinstance(body.get("data"), list):
        logger.error("Events response data field is not a list")
        return False

    return True


def validate_event_data(event: Dict[str, Any]) -> bool:
    """Validate a single raw event object.

    Only the event ID is mandatory; every other field has a fallback in the
    transformer.

    Examples:
        >>> validate_event_data({"eventID": "abc", "odds": {}})
        True
        >>> validate_event_data({"odds": {}})
        False
    """
    if not isinstance(event, dict):
        logger.warning("Event is not a dictionary")
        return False

    if not event.get("eventID"):
        logger.warning("Event missing field: eventID")
        return False

    odds = event.get("odds")
    if odds is not None and not isinstance(odds, dict):
        logger.warning(f"Event {event.get('eventID')} odds field is not a dictionary")
        return False

    return True


def validate_odd_data(odd: Dict[str, Any]) -> bool:
    """Validate one entry of an event's odds map.

    Examples:
        >>> validate_odd_data({"oddID": "points-home-game-ml-home"})
        True
        >>> validate_odd_data("points-home-game-ml-home")
        False
    """
    if not isinstance(odd, dict):
        return False

    if not odd.get("oddID"):
        logger.warning("Odd entry missing field: oddID")
        return False

    by_bookmaker = odd.get("byBookmaker")
    if by_bookmaker is not None and not isinstance(by_bookmaker, dict):
        logger.warning(f"Odd {odd.get('oddID')} byBookmaker field is not a dictionary")
        return False

    return True


def validate_bookmaker_quote(quote: Dict[str, Any]) -> bool:
    """Validate a single sportsbook quote inside ``byBookmaker``.

    Quotes flagged ``available: false`` are treated as absent.

    Examples:
        >>> validate_bookmaker_quote({"odds": "-110", "available": True})
        True
        >>> validate_bookmaker_quote({"odds": "-110", "available": False})
        False
    """
    if not isinstance(quote, dict):
        return False

    if quote.get("available") is False:
        return False

    if quote.get("odds") in (None, ""):
        return False

    return True
