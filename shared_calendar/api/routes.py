"""API routes for the shared calendar application."""
import asyncio
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Optional

import structlog
from fastapi import APIRouter, Form, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from shared_calendar.api.schemas import (
    CalendarCreate,
    CalendarOut,
    DateRangeIn,
    EventCreated,
    EventIn,
    EventOut,
    EventPatch,
    UpcomingOut,
    ValidationOut,
)
from shared_calendar.config import settings
from shared_calendar.exceptions import (
    CalendarExistsError,
    CalendarNotFoundError,
    EventNotFoundError,
    InvalidCalendarIdError,
    InvalidEventError,
    SharedCalendarError,
)
from shared_calendar.models.event import EventCategory, EventDraft, ReminderTime
from shared_calendar.services.categories import category_color, category_label, reminder_label
from shared_calendar.services.days import (
    VIEWS,
    format_range_title,
    shift_anchor,
    upcoming_events,
    week_start_weekday,
)
from shared_calendar.services.event_store import EventStore
from shared_calendar.services.layout_engine import layout_for_view
from shared_calendar.services.validation import (
    ensure_valid,
    parse_instant,
    validate_event_date_range,
    validate_event_fields,
)

logger = structlog.get_logger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.globals.update(
    category_color=category_color,
    category_label=category_label,
    reminder_label=reminder_label,
)

DAY_NAMES = {
    "sunday": ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"],
    "monday": ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"],
}


def get_store(request: Request) -> EventStore:
    """Event store attached to the running app."""
    return request.app.state.store


def http_error(error: SharedCalendarError) -> HTTPException:
    """Map a domain error to an HTTP error."""
    if isinstance(error, (InvalidEventError, InvalidCalendarIdError)):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, (CalendarNotFoundError, EventNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, CalendarExistsError):
        return HTTPException(status_code=409, detail=str(error))
    logger.error("store_request_failed", error=str(error))
    return HTTPException(status_code=503, detail=f"Storage error: {error}")


def parse_view(view: str) -> str:
    """Validate the view query parameter."""
    if view not in VIEWS:
        raise HTTPException(status_code=400, detail=f"Unsupported view: {view}")
    return view


def parse_anchor(value: Optional[str]) -> date:
    """Parse the date query parameter, defaulting to today."""
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


def event_out(event) -> EventOut:
    """Convert a model event to its API form."""
    return EventOut(**event.to_dict())


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    """Render the landing page."""
    return templates.TemplateResponse(request, "index.html", {})


@router.post("/new")
async def new_calendar(request: Request):
    """Create a calendar and open it."""
    try:
        calendar_id = await get_store(request).create_calendar()
    except SharedCalendarError as e:
        raise http_error(e) from e
    return RedirectResponse(url=f"/calendar/{calendar_id}", status_code=303)


@router.get("/calendar/{calendar_id}", response_class=HTMLResponse)
async def calendar_page(
    request: Request,
    calendar_id: str,
    view: str = "month",
    date_param: Optional[str] = Query(default=None, alias="date"),
):
    """Render a calendar grid with its upcoming-events sidebar."""
    view = parse_view(view)
    anchor = parse_anchor(date_param)
    store = get_store(request)

    try:
        events = await store.list_events(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e

    layout = layout_for_view(
        events,
        view,
        anchor,
        month_row_budget=settings.MONTH_ROW_BUDGET,
        week_row_budget=settings.WEEK_ROW_BUDGET,
        week_start=settings.WEEK_STARTS_ON,
    )

    return templates.TemplateResponse(
        request,
        "calendar.html",
        {
            "calendar_id": calendar_id,
            "view": view,
            "anchor": anchor,
            "today": datetime.now().date(),
            "title": format_range_title(anchor, view, settings.WEEK_STARTS_ON),
            "previous_date": shift_anchor(anchor, view, -1).isoformat(),
            "next_date": shift_anchor(anchor, view, 1).isoformat(),
            "day_names": DAY_NAMES[settings.WEEK_STARTS_ON],
            "first_weekday": week_start_weekday(settings.WEEK_STARTS_ON),
            "layout": layout,
            "upcoming": upcoming_events(events, datetime.now(), settings.UPCOMING_LIMIT),
        },
    )


FORM_TIME_FORMAT = "%Y-%m-%dT%H:%M"


def _form_values(event=None, day: Optional[date] = None) -> dict:
    """Initial values for the event form: an existing event, or 09:00-10:00 on a day."""
    if event is not None:
        return {
            "title": event.title,
            "description": event.description,
            "start_date": event.start.strftime(FORM_TIME_FORMAT),
            "end_date": event.end.strftime(FORM_TIME_FORMAT),
            "category": event.category.value,
            "reminder": (event.reminder or ReminderTime.NONE).value,
        }

    start = datetime.combine(day or date.today(), time(9, 0))
    return {
        "title": "",
        "description": "",
        "start_date": start.strftime(FORM_TIME_FORMAT),
        "end_date": (start + timedelta(hours=1)).strftime(FORM_TIME_FORMAT),
        "category": EventCategory.DEFAULT.value,
        "reminder": ReminderTime.NONE.value,
    }


def _fields_from_form(form: dict):
    """
    Convert submitted form values into event fields.

    Returns:
        (fields, None) when valid, (None, error message) otherwise
    """
    result = validate_event_fields(form["title"], form["start_date"], form["end_date"], form["description"])
    if not result.is_valid:
        return None, result.error_message

    try:
        category = EventCategory(form["category"])
        reminder = ReminderTime(form["reminder"])
    except ValueError:
        return None, "Category or reminder is invalid"

    return {
        "title": form["title"].strip(),
        "description": form["description"],
        "start": parse_instant(form["start_date"]),
        "end": parse_instant(form["end_date"]),
        "category": category,
        "reminder": None if reminder is ReminderTime.NONE else reminder,
    }, None


def render_event_form(
    request: Request,
    calendar_id: str,
    view: str,
    form: dict,
    event=None,
    error: Optional[str] = None,
    status_code: int = 200,
):
    """Render the create/edit dialog."""
    start = parse_instant(form["start_date"])
    back_date = start.date().isoformat() if start else ""
    action = f"/calendar/{calendar_id}/events" + (f"/{event.id}" if event else "")
    return templates.TemplateResponse(
        request,
        "event_form.html",
        {
            "calendar_id": calendar_id,
            "view": view,
            "event": event,
            "form": form,
            "error": error,
            "action": action,
            "back_url": f"/calendar/{calendar_id}?view={view}&date={back_date}",
            "categories": list(EventCategory),
            "reminders": list(ReminderTime),
        },
        status_code=status_code,
    )


def _redirect_to_day(calendar_id: str, view: str, day: date) -> RedirectResponse:
    return RedirectResponse(
        url=f"/calendar/{calendar_id}?view={view}&date={day.isoformat()}", status_code=303
    )


async def _calendar_event(store: EventStore, calendar_id: str, event_id: str):
    """Fetch an event, requiring it to belong to the calendar."""
    for event in await store.list_events(calendar_id):
        if event.id == event_id:
            return event
    raise EventNotFoundError(f"Event not found: {event_id}")


@router.get("/calendar/{calendar_id}/events/new", response_class=HTMLResponse)
async def new_event_form(
    request: Request,
    calendar_id: str,
    view: str = "month",
    date_param: Optional[str] = Query(default=None, alias="date"),
):
    """Render the create dialog, prefilled for the clicked day."""
    view = parse_view(view)
    day = parse_anchor(date_param)
    try:
        await get_store(request).get_calendar(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return render_event_form(request, calendar_id, view, _form_values(day=day))


@router.get("/calendar/{calendar_id}/events/{event_id}/edit", response_class=HTMLResponse)
async def edit_event_form(request: Request, calendar_id: str, event_id: str, view: str = "month"):
    """Render the edit dialog for an event."""
    view = parse_view(view)
    try:
        event = await _calendar_event(get_store(request), calendar_id, event_id)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return render_event_form(request, calendar_id, view, _form_values(event=event), event=event)


@router.post("/calendar/{calendar_id}/events")
async def submit_new_event(
    request: Request,
    calendar_id: str,
    title: str = Form(""),
    description: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
    category: str = Form(EventCategory.DEFAULT.value),
    reminder: str = Form(ReminderTime.NONE.value),
    view: str = Form("month"),
):
    """Create an event from the dialog, then return to the grid."""
    view = parse_view(view)
    form = {
        "title": title,
        "description": description,
        "start_date": start_date,
        "end_date": end_date,
        "category": category,
        "reminder": reminder,
    }
    fields, error = _fields_from_form(form)
    if error:
        return render_event_form(request, calendar_id, view, form, error=error, status_code=422)

    draft = EventDraft(**fields)
    try:
        await get_store(request).create_event(calendar_id, draft)
    except InvalidEventError as e:
        return render_event_form(request, calendar_id, view, form, error=str(e), status_code=422)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return _redirect_to_day(calendar_id, view, draft.start.date())


@router.post("/calendar/{calendar_id}/events/{event_id}")
async def submit_event_edit(
    request: Request,
    calendar_id: str,
    event_id: str,
    title: str = Form(""),
    description: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
    category: str = Form(EventCategory.DEFAULT.value),
    reminder: str = Form(ReminderTime.NONE.value),
    view: str = Form("month"),
):
    """Save the edit dialog, then return to the grid."""
    view = parse_view(view)
    store = get_store(request)
    try:
        event = await _calendar_event(store, calendar_id, event_id)
    except SharedCalendarError as e:
        raise http_error(e) from e

    form = {
        "title": title,
        "description": description,
        "start_date": start_date,
        "end_date": end_date,
        "category": category,
        "reminder": reminder,
    }
    fields, error = _fields_from_form(form)
    if error:
        return render_event_form(request, calendar_id, view, form, event=event, error=error, status_code=422)

    try:
        updated = await store.update_event(event_id, **fields)
    except InvalidEventError as e:
        return render_event_form(request, calendar_id, view, form, event=event, error=str(e), status_code=422)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return _redirect_to_day(calendar_id, view, updated.start_day)


@router.post("/calendar/{calendar_id}/events/{event_id}/delete")
async def submit_event_delete(request: Request, calendar_id: str, event_id: str, view: str = Form("month")):
    """Delete an event from the dialog, then return to the grid."""
    view = parse_view(view)
    store = get_store(request)
    try:
        event = await _calendar_event(store, calendar_id, event_id)
        await store.delete_event(event_id)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return _redirect_to_day(calendar_id, view, event.start_day)


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@router.post("/api/calendars", response_model=CalendarOut, status_code=201)
async def create_calendar(request: Request, body: Optional[CalendarCreate] = None):
    """Create a calendar, optionally with a chosen id."""
    store = get_store(request)
    try:
        calendar_id = await store.create_calendar(body.calendar_id if body else None)
        record = await store.get_calendar(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return CalendarOut(**record.to_dict())


@router.get("/api/calendars/{calendar_id}", response_model=CalendarOut)
async def get_calendar(request: Request, calendar_id: str):
    """Fetch a calendar record."""
    try:
        record = await get_store(request).get_calendar(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return CalendarOut(**record.to_dict())


@router.get("/api/calendars/{calendar_id}/events")
async def list_events(request: Request, calendar_id: str):
    """List all events of a calendar."""
    try:
        events = await get_store(request).list_events(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return {"events": [event_out(event) for event in events]}


@router.post("/api/calendars/{calendar_id}/events", response_model=EventCreated, status_code=201)
async def create_event(request: Request, calendar_id: str, body: EventIn):
    """Create an event; client_id is echoed back and in the live notification."""
    store = get_store(request)
    try:
        ensure_valid(validate_event_fields(body.title, body.start_date, body.end_date, body.description))
        draft = EventDraft(
            title=body.title,
            start=parse_instant(body.start_date),
            end=parse_instant(body.end_date),
            category=body.category,
            description=body.description,
            reminder=body.reminder,
        )
        event_id = await store.create_event(calendar_id, draft, client_id=body.client_id)
        event = await store.get_event(event_id)
    except SharedCalendarError as e:
        raise http_error(e) from e

    return EventCreated(id=event_id, client_id=body.client_id, event=event_out(event))


@router.patch("/api/events/{event_id}", response_model=EventOut)
async def update_event(request: Request, event_id: str, body: EventPatch):
    """Apply a partial update to an event."""
    changes = body.model_dump(exclude_unset=True)
    fields = {}
    for key in ("title", "description", "category", "reminder"):
        if key in changes:
            fields[key] = changes[key]

    for key, target in (("start_date", "start"), ("end_date", "end")):
        if key in changes:
            parsed = parse_instant(changes[key])
            if parsed is None:
                label = "Start" if target == "start" else "End"
                raise HTTPException(status_code=422, detail=f"{label} date is invalid")
            fields[target] = parsed

    for key in ("title", "category"):
        if key in fields and fields[key] is None:
            raise HTTPException(status_code=422, detail=f"{key.capitalize()} cannot be empty")
    if fields.get("description", "") is None:
        fields["description"] = ""

    try:
        event = await get_store(request).update_event(event_id, **fields)
    except SharedCalendarError as e:
        raise http_error(e) from e
    return event_out(event)


@router.delete("/api/events/{event_id}", status_code=204)
async def delete_event(request: Request, event_id: str):
    """Delete an event."""
    try:
        await get_store(request).delete_event(event_id)
    except SharedCalendarError as e:
        raise http_error(e) from e


@router.get("/api/calendars/{calendar_id}/layout")
async def get_layout(
    request: Request,
    calendar_id: str,
    view: str = "month",
    date_param: Optional[str] = Query(default=None, alias="date"),
    strategy: str = "source",
):
    """Row assignments for the visible range of a view."""
    view = parse_view(view)
    anchor = parse_anchor(date_param)

    try:
        events = await get_store(request).list_events(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e

    try:
        layout = layout_for_view(
            events,
            view,
            anchor,
            month_row_budget=settings.MONTH_ROW_BUDGET,
            week_row_budget=settings.WEEK_ROW_BUDGET,
            week_start=settings.WEEK_STARTS_ON,
            strategy=strategy,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return JSONResponse(layout.to_dict())


@router.get("/api/calendars/{calendar_id}/upcoming", response_model=UpcomingOut)
async def get_upcoming(
    request: Request,
    calendar_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=100),
):
    """Events starting from now on, soonest first."""
    try:
        events = await get_store(request).list_events(calendar_id)
    except SharedCalendarError as e:
        raise http_error(e) from e

    upcoming = upcoming_events(events, datetime.now(), limit or settings.UPCOMING_LIMIT)
    return UpcomingOut(events=[event_out(event) for event in upcoming])


@router.post("/api/validate", response_model=ValidationOut)
async def validate_range(body: DateRangeIn):
    """Run the date-range validator without writing anything."""
    result = validate_event_date_range(body.start_date, body.end_date)
    return ValidationOut(**result.to_dict())


async def _forward_changes(queue: asyncio.Queue, websocket: WebSocket) -> None:
    while True:
        note = await queue.get()
        await websocket.send_json(note.to_dict())


async def _receive_until_disconnect(websocket: WebSocket) -> None:
    # Incoming messages are ignored; receiving detects the disconnect.
    while True:
        await websocket.receive_text()


@router.websocket("/api/calendars/{calendar_id}/live")
async def live_updates(websocket: WebSocket, calendar_id: str):
    """
    Stream a calendar's changes.

    Sends a snapshot of the current events first, then one message per
    insert, update or delete. The feed ends as soon as either the client
    disconnects or a send fails; the subscription is always removed.
    """
    store: EventStore = websocket.app.state.store
    try:
        exists = await store.calendar_exists(calendar_id)
    except SharedCalendarError as e:
        logger.error("live_calendar_unavailable", calendar_id=calendar_id, error=str(e))
        await websocket.close(code=1011)
        return
    if not exists:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = store.on_change(calendar_id, queue.put_nowait)
    logger.info("live_client_connected", calendar_id=calendar_id)

    tasks = []
    try:
        events = await store.list_events(calendar_id)
        await websocket.send_json({
            "type": "snapshot",
            "calendar_id": calendar_id,
            "events": [event.to_dict() for event in events],
        })

        tasks = [
            asyncio.create_task(_receive_until_disconnect(websocket)),
            asyncio.create_task(_forward_changes(queue, websocket)),
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            try:
                task.result()
            except WebSocketDisconnect:
                logger.info("live_client_disconnected", calendar_id=calendar_id)
            except Exception:
                logger.exception("live_forward_failed", calendar_id=calendar_id)
    except WebSocketDisconnect:
        logger.info("live_client_disconnected", calendar_id=calendar_id)
    finally:
        unsubscribe()
        for task in tasks:
            task.cancel()
