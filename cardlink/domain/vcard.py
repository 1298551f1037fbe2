"""
vCard Export
============

Builds the vCard 3.0 text offered by the "Add to Contacts" button on the
public card page.
"""

from .models import Card


def _escape(value: str) -> str:
    """Escape characters with special meaning in vCard property values."""
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace(",", "\\,")
        .replace(";", "\\;")
    )


def generate_vcard(card: Card) -> str:
    first = _escape(card.first_name)
    last = _escape(card.last_name)

    vcard = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"FN:{_escape(card.full_name)}",
        f"N:{last};{first};;;",
    ]

    # Optional fields
    if card.job_title:
        vcard.append(f"TITLE:{_escape(card.job_title)}")
    if card.company_name:
        vcard.append(f"ORG:{_escape(card.company_name)}")
    if card.mobile_number:
        vcard.append(f"TEL;TYPE=CELL:{card.mobile_number}")
    if card.company_number:
        vcard.append(f"TEL;TYPE=WORK:{card.company_number}")
    if card.work_address:
        vcard.append(f"ADR;TYPE=WORK:;;{_escape(card.work_address)};;;;")
    if card.profile_photo_url:
        vcard.append(f"PHOTO;VALUE=URI:{card.profile_photo_url}")
    if card.company_logo_url:
        vcard.append(f"LOGO;VALUE=URI:{card.company_logo_url}")

    vcard.append("END:VCARD")
    return "\r\n".join(vcard) + "\r\n"


def _filename_part(value: str) -> str:
    for char in '"/\\':
        value = value.replace(char, "")
    return value.strip().replace(" ", "_")


def vcard_filename(card: Card) -> str:
    first = _filename_part(card.first_name) or "contact"
    last = _filename_part(card.last_name)
    return f"{first}_{last}.vcf" if last else f"{first}.vcf"
