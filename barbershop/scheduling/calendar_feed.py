"""iCalendar (RFC 5545) export of confirmed appointments."""

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

CRLF = '\r\n'
MAX_LINE_OCTETS = 75


def format_ics_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def escape_ics_text(value: str) -> str:
    return (
        value.replace('\\', '\\\\')
        .replace(';', '\\;')
        .replace(',', '\\,')
        .replace('\r\n', '\n')
        .replace('\r', '\n')
        .replace('\n', '\\n')
    )


def fold_ics_line(line: str) -> list[str]:
    """Split a content line into 75-octet physical lines.

    Continuation lines start with a single space, which counts toward the
    limit. Multi-byte characters are never split.
    """
    folded: list[str] = []
    current = ''
    current_octets = 0
    for char in line:
        char_octets = len(char.encode('utf-8'))
        if current_octets + char_octets > MAX_LINE_OCTETS:
            folded.append(current)
            current = ' '
            current_octets = 1
        current += char
        current_octets += char_octets
    folded.append(current)
    return folded


def appointment_summary(appointment, service_name: str | None, barber_name: str | None) -> str:
    summary = f'{service_name or "Appointment"} – {appointment.client_name}'
    if appointment.is_walk_in:
        summary += ' (Walk-in)'
    if barber_name:
        summary += f' @ {barber_name}'
    return summary


def build_calendar_feed(
    appointments: Iterable,
    barbers: Mapping,
    services: Mapping,
    *,
    shop_name: str,
    uid_domain: str,
    now: datetime,
) -> str:
    """Render appointments as a VCALENDAR document.

    ``barbers`` and ``services`` map ids to records with a ``name``.
    """
    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f'PRODID:-//{escape_ics_text(shop_name)}//Schedule//EN',
        'CALSCALE:GREGORIAN',
    ]
    dtstamp = format_ics_timestamp(now)

    for appointment in appointments:
        barber = barbers.get(appointment.barber_id)
        service = services.get(appointment.service_id)
        summary = appointment_summary(
            appointment,
            service.name if service is not None else None,
            barber.name if barber is not None else None,
        )
        lines.extend(
            [
                'BEGIN:VEVENT',
                f'UID:{appointment.id}@{uid_domain}',
                f'DTSTAMP:{dtstamp}',
                f'DTSTART:{format_ics_timestamp(appointment.start_at)}',
                f'DTEND:{format_ics_timestamp(appointment.end_at)}',
                f'SUMMARY:{escape_ics_text(summary)}',
                'END:VEVENT',
            ]
        )

    lines.append('END:VCALENDAR')

    physical_lines = []
    for line in lines:
        physical_lines.extend(fold_ics_line(line))
    return CRLF.join(physical_lines) + CRLF
