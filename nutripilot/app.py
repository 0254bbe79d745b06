import logging

from flask import Flask, Response, request
from twilio.twiml.messaging_response import MessagingResponse
from werkzeug.exceptions import HTTPException

from . import __version__
from .agrocore import AgroCoreClient, AgroCoreError
from .config import Settings, load_settings
from .menus import GENERIC_ERROR, VERSION
from .router import Router
from .sessions import SessionStore, build_session_store, e164

logger = logging.getLogger("nutripilot.app")

# WhatsApp rejects bodies above this
MAX_MESSAGE_CHARS = 1600


def configure_logging(level_name: str) -> None:
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("nutripilot").setLevel(level)


def twiml_message(text: str) -> Response:
    if len(text) > MAX_MESSAGE_CHARS:
        text = text[: MAX_MESSAGE_CHARS - 1] + "…"
    resp = MessagingResponse()
    resp.message(text)
    return Response(str(resp), mimetype="application/xml", status=200)


def agrocore_status(client) -> str:
    """Reachability of the AgroCore engine for /version: disabled, ok or unreachable."""
    if client is None:
        return "disabled"
    try:
        client.health()
    except AgroCoreError as e:
        logger.warning("AgroCore health check failed: %s", e)
        return "unreachable"
    return "ok"


def create_app(settings: Settings = None, store: SessionStore = None,
               agrocore: AgroCoreClient = None, router: Router = None) -> Flask:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    if router is None:
        if agrocore is None and settings.agrocore_enabled:
            agrocore = AgroCoreClient(settings.agrocore_base, timeout=settings.agrocore_timeout,
                                      retries=settings.agrocore_retries)
        router = Router(store if store is not None else build_session_store(settings),
                        settings=settings, agrocore=agrocore)

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.config["ROUTER"] = router

    # -----------------------------
    # Health & diagnostics
    # -----------------------------
    @app.route("/", methods=["GET"])
    @app.route("/whatsapp", methods=["GET"])
    def index():
        return VERSION, 200

    @app.route("/health", methods=["GET"])
    def health():
        return "ok", 200

    @app.route("/version", methods=["GET"])
    def version():
        return {
            "version": VERSION,
            "package": __version__,
            "agrocore": agrocore_status(router.agrocore),
            "session_store": type(router.store).__name__,
        }, 200

    # -----------------------------
    # WhatsApp webhook
    # -----------------------------
    @app.route("/", methods=["POST"])
    @app.route("/whatsapp", methods=["POST"])
    def whatsapp_webhook():
        phone = e164(request.values.get("From") or "") or "unknown"
        body = request.values.get("Body") or ""

        # Twilio sends MediaUrl0/MediaContentType0 when files are attached
        media_url = request.values.get("MediaUrl0") or None
        media_type = request.values.get("MediaContentType0") or None

        reply = router.handle(phone, body, media_url=media_url, media_type=media_type)
        return twiml_message(reply.text)

    @app.errorhandler(Exception)
    def handle_any_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error in request")
        # Twilio retries non-2xx answers, so failures still get a 200 reply
        return twiml_message(GENERIC_ERROR)

    return app


app = create_app()


# -----------------------------
# Entrypoint (local dev)
# -----------------------------
if __name__ == "__main__":
    port = app.config["SETTINGS"].port
    print(f"Starting {VERSION} on http://0.0.0.0:{port}")
    app.run(host="0.0.0.0", port=port)
