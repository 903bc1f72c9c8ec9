import psutil
from decimal import Decimal, InvalidOperation
from functools import wraps
from telegram import Update
from telegram.ext import Application, ApplicationBuilder, ContextTypes, CommandHandler
from tickerbar.config import settings
from tickerbar.core.display import format_change
from tickerbar.core.logger import logger
from tickerbar.core.models import ConnectionState

STATE_LABELS = {
    ConnectionState.CONNECTING: "🟡 Connecting...",
    ConnectionState.CONNECTED: "🟢 Connected",
    ConnectionState.DISCONNECTED: "🔴 Disconnected, reconnecting automatically...",
}

def authorized_only(func):
    """Decorator to check if user is in ALLOWED_IDS"""
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user_id = update.effective_user.id
        if user_id not in settings.TELEGRAM_ALLOWED_IDS:
            logger.warning(f"Unauthorized access attempt from User ID: {user_id}")
            return # Silent ignore
        return await func(update, context, *args, **kwargs)
    return wrapper

def status_text(tracker) -> str:
    mem = psutil.virtual_memory()
    msg = [
        f"📊 {settings.APP_NAME} v{settings.APP_VERSION}",
        STATE_LABELS[tracker.connection.state],
        f"🧠 Memory: {mem.percent}% used",
    ]

    pairs = tracker.registry.pairs()
    if not pairs:
        msg.append("📭 List is empty. Use /add BTC to start tracking.")
        return "\n".join(msg)

    selected = tracker.registry.selected
    for pair in pairs:
        marker = "▶️" if pair.symbol == selected else "•"
        price = f"${pair.last_price}" if pair.last_price else "..."
        line = f"{marker} {pair.symbol}: {price}"
        change = format_change(pair.change_24h)
        if change:
            line += f" ({change})"
        msg.append(line)
    return "\n".join(msg)

def _tracker(context: ContextTypes.DEFAULT_TYPE):
    return context.bot_data.get("tracker")

@authorized_only
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(f"{settings.APP_NAME} Online v{settings.APP_VERSION}")

@authorized_only
async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    tracker = _tracker(context)
    if tracker is None:
        await update.message.reply_text("⚠️ Tracker not ready")
        return
    await update.message.reply_text(status_text(tracker))

@authorized_only
async def add_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    tracker = _tracker(context)
    if not context.args:
        await update.message.reply_text("Usage: /add BTC or /add ETH-USDC")
        return
    result = await tracker.add_symbol(context.args[0])
    if result.success:
        await update.message.reply_text(f"✅ {result.message}")
    else:
        await update.message.reply_text(f"⚠️ {result.message}")

@authorized_only
async def remove_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    tracker = _tracker(context)
    if not context.args:
        await update.message.reply_text("Usage: /remove BTC")
        return
    if await tracker.remove_symbol(context.args[0]):
        await update.message.reply_text(f"🗑 Removed {context.args[0].upper()}")
    else:
        await update.message.reply_text(f"⚠️ {context.args[0].upper()} is not tracked")

@authorized_only
async def select_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    tracker = _tracker(context)
    if not context.args:
        await update.message.reply_text("Usage: /select BTC")
        return
    selected = await tracker.select_symbol(context.args[0])
    if selected:
        await update.message.reply_text(f"▶️ Showing {selected}")
    else:
        await update.message.reply_text(f"⚠️ {context.args[0].upper()} is not tracked")

@authorized_only
async def refresh_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _tracker(context).refresh_connection()
    await update.message.reply_text("🔄 Reconnecting...")

@authorized_only
async def test_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _tracker(context).send_test_notification()

ALERTS_USAGE = "Usage: /alerts on|off [threshold %] [window minutes]"

@authorized_only
async def alerts_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    tracker = _tracker(context)
    if not context.args:
        config = tracker.engine.config
        state = "on" if config.enabled else "off"
        await update.message.reply_text(
            f"🔔 Alerts {state}: {config.threshold_percent}% within {config.window_minutes} min\n{ALERTS_USAGE}"
        )
        return

    mode = context.args[0].lower()
    if mode not in ("on", "off"):
        await update.message.reply_text(ALERTS_USAGE)
        return

    try:
        threshold = Decimal(context.args[1]) if len(context.args) > 1 else None
        window = int(context.args[2]) if len(context.args) > 2 else None
    except (InvalidOperation, ValueError):
        await update.message.reply_text(ALERTS_USAGE)
        return
    if threshold is not None and not threshold.is_finite():
        await update.message.reply_text(ALERTS_USAGE)
        return

    try:
        config = tracker.configure_alerts(mode == "on", threshold, window)
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    state = "on" if config.enabled else "off"
    await update.message.reply_text(
        f"🔔 Alerts {state}: {config.threshold_percent}% within {config.window_minutes} min"
    )

class TelegramNotifier:
    def __init__(self, tracker=None):
        self.app: Application | None = None
        self.tracker = tracker

    def set_tracker(self, tracker):
        self.tracker = tracker
        if self.app:
            self.app.bot_data["tracker"] = tracker

    async def start(self):
        if not settings.TELEGRAM_TOKEN:
            logger.warning("Telegram Token not set. Notifications are logged only.")
            return

        self.app = ApplicationBuilder().token(settings.TELEGRAM_TOKEN).build()
        self.app.bot_data["tracker"] = self.tracker

        self.app.add_handler(CommandHandler("start", start_command))
        self.app.add_handler(CommandHandler("status", status_command))
        self.app.add_handler(CommandHandler("add", add_command))
        self.app.add_handler(CommandHandler("remove", remove_command))
        self.app.add_handler(CommandHandler("select", select_command))
        self.app.add_handler(CommandHandler("refresh", refresh_command))
        self.app.add_handler(CommandHandler("test", test_command))
        self.app.add_handler(CommandHandler("alerts", alerts_command))

        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling()

        logger.info(f"Telegram Bot Started. Authorized IDs: {settings.TELEGRAM_ALLOWED_IDS}")

    async def notify(self, title: str, body: str):
        """Deliver a notification. Never raises: delivery problems are only logged."""
        if not self.app:
            logger.info(f"[NOTIFY] {title}: {body}")
            return
        try:
            await self.broadcast(f"🔔 {title}\n{body}")
        except Exception as e:
            logger.error(f"Notification failed: {e}")

    async def broadcast(self, message: str):
        """Send a message to all authorized users"""
        if not self.app or not settings.TELEGRAM_ALLOWED_IDS:
            return

        for chat_id in settings.TELEGRAM_ALLOWED_IDS:
            try:
                await self.app.bot.send_message(chat_id=chat_id, text=message)
            except Exception as e:
                logger.error(f"Failed to send Telegram message to {chat_id}: {e}")

    async def stop(self):
        if self.app:
            logger.info("Stopping Telegram Bot...")
            await self.app.updater.stop()
            await self.app.stop()
            await self.app.shutdown()
            logger.info("Telegram Bot Stopped")
