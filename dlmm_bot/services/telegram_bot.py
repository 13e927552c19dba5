"""Telegram bot for position notifications and remote control."""

import asyncio
import logging
import threading
from typing import Optional

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from dlmm_bot.config import settings

logger = logging.getLogger(__name__)

_bot_instance: Optional["TelegramBot"] = None


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop.

    Engine work (emergency stop) is handed to the service loop, which owns
    the engine's sessions and locks.
    """

    def __init__(self, token: str, chat_ids: list[int], service_loop: asyncio.AbstractEventLoop | None = None):
        self.token = token
        self.chat_ids = set(chat_ids)
        self.service_loop = service_loop
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _is_authorized(self, user_id: int) -> bool:
        return user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        if not update.effective_user or not self._is_authorized(update.effective_user.id):
            if update.message:
                await update.message.reply_text("Unauthorized.")
            return False
        return True

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from dlmm_bot.engine.runtime import get_runtime, has_runtime
        from dlmm_bot.engine.scheduler import get_scheduler_status

        status = get_scheduler_status()
        scheduler_str = "running" if status["running"] else "stopped"
        if has_runtime():
            runtime = get_runtime()
            active = len(runtime.store.load_active())
            hedged = len(runtime.registry.hedge_states())
        else:
            active = hedged = 0
        text = (
            f"Scheduler: {scheduler_str}\n"
            f"Jobs: {status['job_count']}\n"
            f"Active positions: {active}\n"
            f"Hedging: {hedged}"
        )
        await update.message.reply_text(text)

    async def _cmd_positions(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from dlmm_bot.engine.runtime import get_runtime, has_runtime

        positions = get_runtime().store.load_active() if has_runtime() else []
        if not positions:
            await update.message.reply_text("No active positions.")
            return

        lines = []
        for pos in positions:
            price = f"${pos.current_price:.4f}" if pos.current_price else "n/a"
            lines.append(
                f"{pos.short_address()}: {price} in ${pos.lower_bound_price:.4f} - "
                f"${pos.upper_bound_price:.4f} | hedges: {len(pos.hedge_swaps_history or [])}"
            )
        await update.message.reply_text("\n".join(lines))

    async def _cmd_hedges(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Last hedge swaps per active position: /hedges [count]"""
        if not await self._check_auth(update):
            return

        from dlmm_bot.engine.runtime import get_runtime, has_runtime

        count = int(context.args[0]) if context.args and context.args[0].isdigit() else 3
        positions = get_runtime().store.load_active() if has_runtime() else []
        lines = []
        for pos in positions:
            history = (pos.hedge_swaps_history or [])[-count:]
            if not history:
                continue
            lines.append(f"{pos.short_address()} (anchor ${pos.last_hedge_price or pos.initial_price:.4f}):")
            for swap in reversed(history):
                lines.append(
                    f"  {swap['direction']} ${swap['notional_usd']:.2f} @ ${swap['price']:.4f} "
                    f"({swap['price_change_percent']:+.2f}%)"
                )
        await update.message.reply_text("\n".join(lines) if lines else "No hedge swaps yet.")

    async def _cmd_close_all(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton("Yes, close all", callback_data="confirm_close_all"),
                InlineKeyboardButton("Cancel", callback_data="cancel"),
            ]
        ])
        await update.message.reply_text(
            "Close all positions and stop monitoring?",
            reply_markup=keyboard,
        )

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if not query or not query.from_user or not self._is_authorized(query.from_user.id):
            return

        await query.answer()

        if query.data == "cancel":
            await query.edit_message_text("Cancelled.")
            return

        if query.data == "confirm_close_all":
            await query.edit_message_text("Closing all positions...")
            result = await self._run_on_service_loop()
            errors = f"\nErrors: {len(result['errors'])}" if result["errors"] else ""
            await query.edit_message_text(
                f"Closed {result['positions_closed']} positions, "
                f"stopped {result['hedges_stopped']} hedges.{errors}"
            )

    async def _run_on_service_loop(self) -> dict:
        from dlmm_bot.services.emergency_stop import run_emergency_stop

        if self.service_loop is None:
            return await run_emergency_stop()
        future = asyncio.run_coroutine_threadsafe(run_emergency_stop(), self.service_loop)
        return await asyncio.wrap_future(future)

    async def send_notification(self, message: str):
        """Send a message to all whitelisted chat IDs."""
        if not self._app or not self._app.bot:
            return
        for chat_id in self.chat_ids:
            try:
                await self._app.bot.send_message(chat_id=chat_id, text=message)
            except Exception as e:
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")

    def _run_bot(self):
        """Run the bot in a background thread with its own event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        commands = {
            "status": self._cmd_status,
            "positions": self._cmd_positions,
            "hedges": self._cmd_hedges,
            "close_all": self._cmd_close_all,
        }
        for name, handler in commands.items():
            self._app.add_handler(CommandHandler(name, handler))
        self._app.add_handler(CallbackQueryHandler(self._handle_callback))

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        self._loop.run_forever()

    def start(self):
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            async def _shutdown():
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)


def init_bot(service_loop: asyncio.AbstractEventLoop | None = None) -> TelegramBot:
    """Initialize and return the bot singleton."""
    global _bot_instance
    _bot_instance = TelegramBot(
        token=settings.telegram_bot_token,
        chat_ids=settings.telegram_chat_ids,
        service_loop=service_loop,
    )
    return _bot_instance


def get_bot() -> Optional[TelegramBot]:
    """Get the bot singleton, or None if not initialized."""
    return _bot_instance
