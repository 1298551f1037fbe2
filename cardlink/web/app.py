"""
FastAPI Web Application - CardLink
===================================

Public card pages with a "Want to Connect?" form, the send-intro-sms function
behind that form, and the owner JSON API (cards, connections, metrics, map).
Owner endpoints take an explicit bearer session token on every request.
"""

import hashlib
import html
import logging
import unicodedata
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, EmailStr, Field

from cardlink.application.analytics import ConnectionAnalytics, to_geojson
from cardlink.application.introduction import IntroductionError, IntroductionPipeline, InvalidRequest
from cardlink.domain import Card, Profile, generate_vcard, vcard_filename
from cardlink.infrastructure.config import Settings, get_settings
from cardlink.infrastructure.geolocation import IPLocator, extract_client_address
from cardlink.infrastructure.persistence import Database
from cardlink.infrastructure.qr import render_qr_png
from cardlink.infrastructure.sms import MessagingProvider, VonageProvider

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

THEME_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"

router = APIRouter()


# ══════════════════════════════════════════════════════════════════
#  REQUEST MODELS
# ══════════════════════════════════════════════════════════════════

class SignupRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=200)
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class CardCreate(BaseModel):
    card_name: str = Field(default="My Card", min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    job_title: Optional[str] = Field(default=None, max_length=100)
    company_name: Optional[str] = Field(default=None, max_length=100)
    work_address: Optional[str] = Field(default=None, max_length=500)
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    company_number: Optional[str] = Field(default=None, max_length=20)
    profile_photo_url: Optional[str] = None
    company_logo_url: Optional[str] = None
    theme_color: str = Field(default="#4F46E5", pattern=THEME_COLOR_PATTERN)


class CardUpdate(BaseModel):
    card_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    job_title: Optional[str] = Field(default=None, max_length=100)
    company_name: Optional[str] = Field(default=None, max_length=100)
    work_address: Optional[str] = Field(default=None, max_length=500)
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    company_number: Optional[str] = Field(default=None, max_length=20)
    profile_photo_url: Optional[str] = None
    company_logo_url: Optional[str] = None
    theme_color: Optional[str] = Field(default=None, pattern=THEME_COLOR_PATTERN)
    is_active: Optional[bool] = None


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def card_to_dict(card: Card, settings: Settings) -> Dict[str, Any]:
    data = dict(card.__dict__)
    data["public_url"] = settings.card_url(card.id)
    return data


def attachment_disposition(filename: str) -> str:
    """Content-Disposition with an ASCII fallback name and the UTF-8 original (RFC 6266)."""
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace('"', "").replace("\\", "")
    stem, dot, extension = fallback.rpartition(".")
    if dot and not stem.strip("_"):
        fallback = f"contact.{extension}"
    elif not fallback.strip("_"):
        fallback = "contact"
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


# ══════════════════════════════════════════════════════════════════
#  HTML TEMPLATE RENDERERS
# ══════════════════════════════════════════════════════════════════

SHARED_CSS = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
        font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif;
        background: #f5f5f7;
        color: #1f2937;
        min-height: 100vh;
        padding: 32px 16px;
    }
    .card {
        max-width: 440px; margin: 0 auto;
        background: #fff; border-radius: 18px; overflow: hidden;
        border: 1px solid #e5e7eb;
        box-shadow: 0 10px 30px rgba(0,0,0,0.08);
    }
    .card-header { padding: 20px 24px; display: flex; align-items: center; }
    .card-header img { height: 44px; }
    .card-header span { margin-left: auto; font-size: 13px; color: #6b7280; }
    .card-body { padding: 24px; }
    h1 { font-size: 28px; font-weight: 800; }
    .muted { color: #6b7280; margin-top: 4px; }
    .avatar { width: 88px; height: 88px; border-radius: 50%; object-fit: cover; float: right; }
    .info { margin: 20px 0; line-height: 1.9; }
    .actions { display: grid; grid-template-columns: 1fr 1fr; gap: 10px; margin-bottom: 24px; }
    .btn {
        display: inline-block; text-align: center; padding: 11px 14px;
        border-radius: 10px; border: none; cursor: pointer;
        font-size: 14px; font-weight: 600; text-decoration: none; color: #fff;
    }
    .btn-outline { background: #fff; color: #1f2937; border: 1px solid #d1d5db; }
    .connect { border: 1px solid #e5e7eb; border-radius: 14px; padding: 18px; }
    .connect h2 { font-size: 18px; margin-bottom: 4px; }
    .connect label { display: block; font-size: 12px; color: #6b7280; margin: 12px 0 4px; }
    .connect input {
        width: 100%; padding: 10px 12px; border: 1px solid #d1d5db;
        border-radius: 8px; font-size: 14px;
    }
    .connect .btn { width: 100%; margin-top: 14px; }
    .alert { margin-top: 12px; font-size: 13px; }
    .qr { text-align: center; margin-top: 24px; }
    .qr img { width: 220px; height: 220px; }
"""


def render_not_found_page() -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Card Not Found - CardLink</title>
    <style>{SHARED_CSS}</style>
</head>
<body>
    <div class="card"><div class="card-body" style="text-align:center">
        <h1>Card Not Found</h1>
        <p class="muted">This card doesn't exist or is no longer active.</p>
    </div></div>
</body>
</html>"""


def render_public_card(card: Card) -> str:
    e = html.escape
    color = e(card.theme_color)

    logo_html = f'<img src="{e(card.company_logo_url)}" alt="Company logo">' if card.company_logo_url else ""
    photo_html = f'<img class="avatar" src="{e(card.profile_photo_url)}" alt="Profile">' if card.profile_photo_url else ""
    title_html = f'<p class="muted">{e(card.job_title)}</p>' if card.job_title else ""
    company_html = f'<p class="muted">{e(card.company_name)}</p>' if card.company_name else ""

    info = []
    if card.mobile_number:
        info.append(f"📞 {e(card.mobile_number)}")
    if card.company_number:
        info.append(f"📞 {e(card.company_number)} (Work)")
    if card.work_address:
        info.append(f"📍 {e(card.work_address)}")
    info_html = "<br>".join(info)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{e(card.full_name)} - CardLink</title>
    <style>
        {SHARED_CSS}
        .card-header {{ background: {color}1a; }}
        .btn {{ background: {color}; }}
    </style>
</head>
<body>
    <div class="card">
        <div class="card-header">
            {logo_html}
            <span>CardLink Card</span>
        </div>
        <div class="card-body">
            {photo_html}
            <h1>{e(card.full_name)}</h1>
            {title_html}
            {company_html}
            <div class="info">{info_html}</div>

            <div class="actions">
                <a class="btn" href="/c/{e(card.id)}/vcard">Add to Contacts</a>
                <button class="btn btn-outline" type="button" id="share-btn">Share</button>
            </div>

            <form class="connect" id="connect-form">
                <h2>Want to Connect?</h2>
                <p class="muted">Send your info to {e(card.full_name)} and they'll reach out!</p>
                <label for="name">Your Name</label>
                <input id="name" name="name" placeholder="John Doe" required>
                <label for="phone">Your Phone Number</label>
                <input id="phone" name="phone" type="tel" placeholder="(555) 123-4567" required>
                <button class="btn" type="submit" id="connect-btn">Send Introduction</button>
                <div class="alert" id="connect-alert"></div>
            </form>

            <div class="qr">
                <img src="/c/{e(card.id)}/qr.png" alt="QR code">
                <p><a href="/c/{e(card.id)}/qr.png" download="card-qr-code.png">Download QR Code</a></p>
            </div>
        </div>
    </div>
    <script>
        const form = document.getElementById('connect-form');
        const alertBox = document.getElementById('connect-alert');
        form.addEventListener('submit', async (event) => {{
            event.preventDefault();
            const name = form.name.value.trim();
            const phone = form.phone.value.trim();
            if (!name || !phone) {{
                alertBox.textContent = 'Please fill in all fields';
                return;
            }}
            const button = document.getElementById('connect-btn');
            button.disabled = true;
            button.textContent = 'Sending...';
            try {{
                const res = await fetch('/functions/send-intro-sms', {{
                    method: 'POST',
                    headers: {{ 'Content-Type': 'application/json' }},
                    body: JSON.stringify({{ cardId: {card.id!r}, name, phone }}),
                }});
                const data = await res.json();
                if (data.success) {{
                    alertBox.textContent = "Introduction sent! They'll be in touch soon.";
                    form.reset();
                }} else {{
                    alertBox.textContent = data.message || 'Failed to send introduction';
                }}
            }} catch (err) {{
                alertBox.textContent = 'Something went wrong. Please try again.';
            }} finally {{
                button.disabled = false;
                button.textContent = 'Send Introduction';
            }}
        }});
        document.getElementById('share-btn').addEventListener('click', async () => {{
            const url = window.location.href;
            if (navigator.share) {{
                try {{ await navigator.share({{ title: document.title, url }}); }} catch (err) {{}}
            }} else {{
                await navigator.clipboard.writeText(url);
                alertBox.textContent = 'Link copied to clipboard!';
            }}
        }});
    </script>
</body>
</html>"""


# ══════════════════════════════════════════════════════════════════
#  DEPENDENCIES
# ══════════════════════════════════════════════════════════════════

def get_db(request: Request) -> Database:
    return request.app.state.db


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_analytics(request: Request) -> ConnectionAnalytics:
    return request.app.state.analytics


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_profile(
    authorization: Optional[str] = Header(default=None),
    db: Database = Depends(get_db),
) -> Profile:
    """Resolve the session token sent with this request to its owner."""
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing session token")
    profile = db.get_profile_by_token(token)
    if not profile:
        raise HTTPException(status_code=401, detail="Invalid session token")
    return profile


def _owned_card(card_id: str, profile: Profile, db: Database) -> Card:
    card = db.get_card(card_id)
    if not card or card.user_id != profile.id:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


# ══════════════════════════════════════════════════════════════════
#  ROUTES
# ══════════════════════════════════════════════════════════════════

# ── Introduction function ──────────────────────────────────────

def _intro_response(success: bool, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        {"success": success, "message": message},
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def _text_field(body: Dict[str, Any], key: str) -> str:
    value = body.get(key)
    return value if isinstance(value, str) else ""


@router.options("/functions/send-intro-sms")
async def send_intro_sms_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/functions/send-intro-sms")
async def send_intro_sms(request: Request):
    """Public contact form: save the contact and text the card owner."""
    pipeline: IntroductionPipeline = request.app.state.pipeline

    try:
        try:
            body = await request.json()
        except ValueError:
            raise InvalidRequest("Request body must be JSON")
        if not isinstance(body, dict):
            raise InvalidRequest("Request body must be a JSON object")

        card_id = _text_field(body, "cardId")
        name = _text_field(body, "name")
        phone = _text_field(body, "phone")
        logger.info(f"Received contact request for card {card_id}")

        client_ip = extract_client_address(request.headers)
        logger.info(f"Client IP: {client_ip}")

        outcome = await run_in_threadpool(pipeline.submit, card_id, name, phone, client_ip)

    except IntroductionError as e:
        logger.warning(f"Introduction rejected: {e.message}")
        return _intro_response(False, e.message, status_code=400)
    except Exception as e:
        logger.exception(f"Error in send-intro-sms: {e}")
        return _intro_response(False, "Something went wrong. Please try again.", status_code=400)

    return _intro_response(outcome.success, outcome.message)


# ── Public card ────────────────────────────────────────────────

@router.get("/c/{card_id}", response_class=HTMLResponse)
def public_card(card_id: str, db: Database = Depends(get_db)):
    card = db.get_active_card(card_id)
    if not card:
        return HTMLResponse(render_not_found_page(), status_code=404)

    try:
        db.record_card_view(card_id)
    except Exception as e:
        logger.exception(f"Error tracking view for card {card_id}: {e}")

    return HTMLResponse(render_public_card(card))


@router.get("/c/{card_id}/vcard")
def download_vcard(card_id: str, db: Database = Depends(get_db)):
    card = db.get_active_card(card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return Response(
        generate_vcard(card),
        media_type="text/vcard",
        headers={"Content-Disposition": attachment_disposition(vcard_filename(card))},
    )


@router.get("/c/{card_id}/qr.png")
def card_qr_code(card_id: str, db: Database = Depends(get_db),
                 settings: Settings = Depends(get_app_settings)):
    card = db.get_active_card(card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    png = render_qr_png(settings.card_url(card.id), card.theme_color)
    return Response(png, media_type="image/png")


# ── Auth routes ────────────────────────────────────────────────

@router.post("/api/signup", status_code=201)
def signup(payload: SignupRequest, db: Database = Depends(get_db)):
    profile = db.create_profile(payload.email, payload.full_name.strip(), hash_password(payload.password))
    if not profile:
        raise HTTPException(status_code=409, detail="Email already exists")
    token = db.create_session(profile.id)
    return {"token": token, "profile": {"id": profile.id, "email": profile.email, "full_name": profile.full_name}}


@router.post("/api/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    profile = db.get_profile_by_email(payload.email)
    if not profile or hash_password(payload.password) != profile.password_hash:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"token": db.create_session(profile.id)}


@router.post("/api/logout")
def logout(authorization: Optional[str] = Header(default=None), db: Database = Depends(get_db)):
    token = _bearer_token(authorization)
    if token:
        db.delete_session(token)
    return {"success": True}


@router.get("/api/me")
def me(profile: Profile = Depends(get_current_profile)):
    return {"id": profile.id, "email": profile.email, "full_name": profile.full_name}


# ── Card CRUD ──────────────────────────────────────────────────

@router.get("/api/cards")
def list_cards(profile: Profile = Depends(get_current_profile), db: Database = Depends(get_db),
               settings: Settings = Depends(get_app_settings)):
    return {"cards": [card_to_dict(card, settings) for card in db.list_cards(profile.id)]}


@router.post("/api/cards", status_code=201)
def create_card(payload: CardCreate, profile: Profile = Depends(get_current_profile),
                db: Database = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    card = db.create_card(profile.id, **payload.model_dump())
    return card_to_dict(card, settings)


@router.get("/api/cards/{card_id}")
def get_card(card_id: str, profile: Profile = Depends(get_current_profile),
             db: Database = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return card_to_dict(_owned_card(card_id, profile, db), settings)


@router.patch("/api/cards/{card_id}")
def update_card(card_id: str, payload: CardUpdate, profile: Profile = Depends(get_current_profile),
                db: Database = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    _owned_card(card_id, profile, db)
    updates = payload.model_dump(exclude_unset=True)
    for required in ("card_name", "first_name", "last_name", "theme_color", "is_active"):
        if required in updates and updates[required] is None:
            raise HTTPException(status_code=422, detail=f"{required} cannot be null")
    db.update_card(card_id, **updates)
    return card_to_dict(db.get_card(card_id), settings)


@router.delete("/api/cards/{card_id}")
def delete_card(card_id: str, profile: Profile = Depends(get_current_profile),
                db: Database = Depends(get_db)):
    _owned_card(card_id, profile, db)
    db.delete_card(card_id)
    return {"success": True}


# ── Connections & Analytics ────────────────────────────────────

@router.get("/api/connections")
def list_connections(profile: Profile = Depends(get_current_profile), db: Database = Depends(get_db)):
    contacts = []
    for contact, card_name in db.list_contacts(profile.id):
        item = contact.to_dict()
        item["card_name"] = card_name
        contacts.append(item)
    return {"contacts": contacts}


@router.get("/api/connections/metrics")
def connection_metrics(profile: Profile = Depends(get_current_profile),
                       analytics: ConnectionAnalytics = Depends(get_analytics)):
    return analytics.get_connection_metrics(profile.id).to_dict()


@router.get("/api/connections/locations")
def connection_locations(profile: Profile = Depends(get_current_profile),
                         analytics: ConnectionAnalytics = Depends(get_analytics)):
    result = analytics.list_geolocated_contacts(profile.id)
    return {
        "contacts": [contact.to_dict() for contact in result.contacts],
        "degraded": result.degraded,
    }


@router.get("/api/connections/geojson")
def connection_geojson(profile: Profile = Depends(get_current_profile),
                       analytics: ConnectionAnalytics = Depends(get_analytics)):
    result = analytics.list_geolocated_contacts(profile.id)
    collection = to_geojson(result.contacts)
    collection["degraded"] = result.degraded
    return collection


# ══════════════════════════════════════════════════════════════════
#  APPLICATION FACTORY
# ══════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.db.init()
    for issue in app.state.settings.validate():
        logger.warning(issue)
    logger.info("Database ready")
    yield


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    locator: Optional[IPLocator] = None,
    sms_provider: Optional[MessagingProvider] = None,
) -> FastAPI:
    """Wire services into a FastAPI app. Arguments override the defaults (used by tests)."""
    settings = settings or get_settings()
    db = db or Database(settings.database_file)

    app = FastAPI(title="CardLink", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.analytics = ConnectionAnalytics(db)
    app.state.pipeline = IntroductionPipeline(
        db,
        locator or IPLocator(),
        sms_provider or VonageProvider(),
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
