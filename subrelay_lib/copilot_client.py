#!/usr/bin/env python3
from __future__ import annotations

"""
Copilot Web automation client for SubRelay.

Uses Playwright to drive https://copilot.microsoft.com:
- One browser per run (launched lazily, closed by close()).
- One browser context + page per conversation, so rotating a conversation
  really does start from a clean chat.
Stores login cookies in cfg/copilot_storage.json for reuse.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from playwright.sync_api import BrowserContext, Page, sync_playwright

from subrelay_lib.errors import TranslationTimeout

logger = logging.getLogger(__name__)

COPILOT_URL = "https://copilot.microsoft.com"
STORAGE_FILE = Path(__file__).parent.parent / "cfg" / "copilot_storage.json"

# Selectors for the Copilot prompt box and assistant replies.
# If Microsoft changes the DOM, update them here.
PROMPT_SELECTOR = "textarea#userInput"
AI_MESSAGE_SELECTOR = 'div[data-content="ai-message"]'
REPLY_TEXT_SELECTOR = "span.font-ligatures-none.whitespace-pre-wrap"

# Seconds allowed for the chat page to load when opening a conversation
PAGE_LOAD_TIMEOUT_SEC = 30


@dataclass
class CopilotConversation:
    context: BrowserContext
    page: Page


class CopilotClient:
    def __init__(self, headless: bool = True, storage_file: Path = STORAGE_FILE) -> None:
        self.headless = headless
        self.storage_file = storage_file
        self._p = None
        self._browser = None

    def login_and_save_session(self) -> None:
        """
        Launch a visible browser for manual login and save session cookies.
        """
        print("\n🔐 Launching Copilot login browser...")
        print("   ➡️ Please log in with your Microsoft account.")
        print("   ✅ Choose 'Stay signed in' when prompted.")
        print("   💬 Wait until the Copilot chat interface is fully loaded.")

        self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=False)
            try:
                context = browser.new_context()
                page = context.new_page()
                page.goto(COPILOT_URL)
                input("   ⏳ Press Enter here once you're logged in...")
                context.storage_state(path=str(self.storage_file))
            finally:
                browser.close()

        print(f"\n💾 Session saved to: {self.storage_file}")

    def launch(self) -> None:
        """
        Start Playwright and the browser once per client.

        Raises:
            FileNotFoundError: If no saved login session exists.
        """
        if self._browser:
            return  # already launched
        if not self.storage_file.exists():
            raise FileNotFoundError(
                f"No saved session found at {self.storage_file}. "
                f"Run `subrelay.py --login` first."
            )

        self._p = sync_playwright().start()
        try:
            self._browser = self._p.chromium.launch(headless=self.headless)
        except Exception:
            self.close()
            raise
        logger.debug("Launched Copilot browser (headless=%s)", self.headless)

    def open_conversation(self) -> CopilotConversation:
        """
        Open a fresh chat in its own browser context and wait for the prompt box.
        """
        self.launch()
        context = self._browser.new_context(storage_state=str(self.storage_file))
        try:
            page = context.new_page()
            logger.debug("Navigating to %s", COPILOT_URL)
            page.goto(COPILOT_URL)
            page.wait_for_selector(PROMPT_SELECTOR, timeout=PAGE_LOAD_TIMEOUT_SEC * 1000)
        except Exception:
            context.close()
            raise
        return CopilotConversation(context=context, page=page)

    def send_prompt(self, conversation: CopilotConversation, prompt_text: str, timeout_sec: float) -> Optional[str]:
        """
        Send a prompt in an open conversation and return the assistant's reply text.

        Waits for a new assistant message to appear, then for its content to
        stop changing. The whole exchange is bounded by `timeout_sec`.

        Returns:
            The reply text, or None if the reply contained no text.

        Raises:
            playwright TimeoutError: No reply appeared in time.
            TranslationTimeout: The reply kept changing until the deadline.
        """
        deadline = time.monotonic() + timeout_sec
        page = conversation.page

        before = len(page.query_selector_all(AI_MESSAGE_SELECTOR))
        logger.debug("Entering prompt (%d chars)", len(prompt_text))
        page.fill(PROMPT_SELECTOR, prompt_text)
        page.keyboard.press("Enter")

        page.wait_for_function(
            "([sel, n]) => document.querySelectorAll(sel).length > n",
            arg=[AI_MESSAGE_SELECTOR, before],
            timeout=timeout_sec * 1000,
        )
        last_msg = page.query_selector_all(AI_MESSAGE_SELECTOR)[-1]

        # Wait for reply content to stabilise
        stable_count = 0
        last_html = ""
        while stable_count < 2:
            if time.monotonic() >= deadline:
                raise TranslationTimeout(f"Copilot reply still streaming after {timeout_sec}s")
            current_html = last_msg.inner_html()
            if current_html == last_html:
                stable_count += 1
            else:
                stable_count = 0
                last_html = current_html
            time.sleep(1)

        spans = last_msg.query_selector_all(REPLY_TEXT_SELECTOR)
        texts = [span.inner_text().strip() for span in spans if span.inner_text().strip()]
        logger.debug("Found %d text spans in assistant reply", len(texts))
        return "\n".join(texts).strip() if texts else None

    def close_conversation(self, conversation: CopilotConversation) -> None:
        conversation.context.close()

    def close(self) -> None:
        """
        Close browser and Playwright.
        """
        try:
            if self._browser:
                self._browser.close()
        except Exception as e:
            logger.warning("Failed to close browser: %s", e)
        try:
            if self._p:
                self._p.stop()
        except Exception as e:
            logger.warning("Failed to stop Playwright: %s", e)
        self._browser = None
        self._p = None
