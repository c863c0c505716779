"""Line-based chat client for the brain API."""

import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ASK_URL = "http://localhost:3000/ai/ask"
REQUEST_TIMEOUT_SECONDS = 120
EXIT_COMMANDS = ("exit", "quit", ":q")


class ChatClient:
    """Sends questions to ``/ai/ask`` and returns the answer text."""

    def __init__(self, ask_url: str = DEFAULT_ASK_URL, client: Optional[httpx.Client] = None):
        self.ask_url = ask_url
        self.client = client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    def ask(self, query: str) -> str:
        """
        Ask one question.

        Returns:
            The answer, or a short error line when the API cannot be reached
        """
        try:
            response = self.client.post(self.ask_url, json={"query": query})
        except httpx.HTTPError as e:
            logger.error(f"Could not reach {self.ask_url}: {e}")
            return f"Error: could not reach the brain API ({e})."

        try:
            body = response.json()
        except ValueError:
            return f"Error: unexpected response (HTTP {response.status_code})."

        if body.get("answer"):
            return body["answer"]
        return f"Error: {body.get('message', 'empty answer')}"

    def run(self, read_line: Callable[[str], str] = input, write: Callable[[str], None] = print) -> None:
        """Prompt for questions until EOF or an exit command."""
        write("Ask about your files. Type 'exit' to leave.")
        while True:
            try:
                query = read_line("> ").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not query:
                continue
            if query.lower() in EXIT_COMMANDS:
                break
            write(self.ask(query))

    def close(self) -> None:
        self.client.close()
