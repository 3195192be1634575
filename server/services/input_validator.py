# server/services/input_validator.py

import ipaddress
import logging
import re
import socket
from typing import Any, Dict, List, Tuple
from urllib.parse import urlparse

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class InputValidator:
    """
    Validates request payloads before they reach Google Sheets or the
    chat completion API.
    """

    # Prompt-injection markers in user chat turns
    INJECTION_PATTERNS = [
        r'ignore\s+(all\s+)?(previous|prior)\s+instructions?',
        r'disregard\s+(all\s+)?previous\s+instructions?',
        r'forget\s+(all\s+)?previous\s+instructions?',
        r'you\s+are\s+now\s+(?:a\s+)?(?:dan|do\s+anything\s+now)',
        r'pretend\s+you\s+are',
        r'show\s+(?:me\s+)?(?:your|the)\s+(?:system\s+)?(?:prompt|instructions)',
        r'repeat\s+(?:your|the)\s+(?:system\s+)?(?:prompt|instructions)',
        r'developer\s+mode',
        r'jailbreak',
    ]

    COMPILED_PATTERNS = [
        re.compile(pattern, re.IGNORECASE | re.DOTALL)
        for pattern in INJECTION_PATTERNS
    ]

    ALLOWED_ROLES = ("system", "user", "assistant")
    MAX_MESSAGES = 50
    MAX_MESSAGE_LENGTH = 20000
    MAX_URL_LENGTH = 2000
    SUSPICIOUS_SCORE_THRESHOLD = 3

    # Hostnames that resolve to internal addresses on GCP
    BLOCKED_HOSTNAMES = ("localhost", "metadata.google.internal", "metadata")

    @classmethod
    def validate_chat_messages(cls, messages: Any) -> Tuple[List[Dict[str, str]], int]:
        """
        Check the chat transcript shape and scan user turns for injection.

        Returns:
            (messages, suspicion_score)
        """
        if not messages or not isinstance(messages, list):
            raise HTTPException(status_code=400, detail="Messages array is required")

        if len(messages) > cls.MAX_MESSAGES:
            raise HTTPException(
                status_code=400,
                detail=f"Too many messages. Max {cls.MAX_MESSAGES}."
            )

        suspicion_score = 0
        for message in messages:
            if not isinstance(message, dict):
                raise HTTPException(status_code=400, detail="Each message must be an object")
            role = message.get("role")
            content = message.get("content")
            if role not in cls.ALLOWED_ROLES:
                raise HTTPException(status_code=400, detail=f"Invalid message role: {role}")
            if not isinstance(content, str) or not content.strip():
                raise HTTPException(status_code=400, detail="Message content cannot be empty")
            if len(content) > cls.MAX_MESSAGE_LENGTH:
                raise HTTPException(
                    status_code=400,
                    detail=f"Message too long. Max {cls.MAX_MESSAGE_LENGTH} characters."
                )
            # System prompts come from the dashboard itself
            if role == "user":
                suspicion_score += sum(1 for p in cls.COMPILED_PATTERNS if p.search(content))

        if suspicion_score >= cls.SUSPICIOUS_SCORE_THRESHOLD:
            logger.warning(f"Chat request rejected, suspicion score {suspicion_score}")
            raise HTTPException(
                status_code=400,
                detail="Input rejected: suspicious patterns detected"
            )

        return messages, suspicion_score

    @classmethod
    def validate_login(cls, email: Any, password: Any) -> Tuple[str, str]:
        if not email or not password:
            raise HTTPException(status_code=400, detail="Email and password are required")
        if not isinstance(email, str) or not isinstance(password, str):
            raise HTTPException(status_code=400, detail="Email and password must be strings")

        email = cls._sanitize_input(email)
        return email, password

    @staticmethod
    def check_field_permissions(fields: List[str], user_role: Any, action: str) -> None:
        """Non-admin users may only write the defyLead column."""
        if user_role == "admin":
            return
        invalid = [f for f in fields if f != "defyLead"]
        if invalid:
            raise HTTPException(
                status_code=403,
                detail=(
                    f"You don't have permission to {action}: {', '.join(invalid)}. "
                    f"Only Defy Lead can be {'set' if action.startswith('add') else 'edited'}."
                )
            )

    @staticmethod
    def _sanitize_input(text: str) -> str:
        """Strip null bytes, control characters and surrounding whitespace."""
        text = text.replace('\x00', '')
        text = ''.join(
            char for char in text
            if ord(char) >= 32 or char in '\n\r\t'
        )
        return text.strip()

    @staticmethod
    def is_public_url(url: str) -> bool:
        """
        True when every address the URL's host resolves to is publicly routable.

        Numeric spellings (2130706433, 0x7f.1) resolve to the address they
        encode, so checks run on resolved addresses rather than the URL text.
        """
        try:
            parsed = urlparse(url)
            host = parsed.hostname
            port = parsed.port
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not host:
            return False
        if host.rstrip(".").lower() in InputValidator.BLOCKED_HOSTNAMES:
            return False

        try:
            infos = socket.getaddrinfo(host, port or 443, proto=socket.IPPROTO_TCP)
        except (socket.gaierror, UnicodeError):
            return False

        for info in infos:
            address = ipaddress.ip_address(info[4][0].split("%", 1)[0])
            if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
                address = address.ipv4_mapped
            if not address.is_global:
                return False
        return bool(infos)

    @staticmethod
    def validate_url(url: str) -> bool:
        """Validate a published-sheet CSV URL supplied by the client."""
        if len(url) > InputValidator.MAX_URL_LENGTH:
            raise HTTPException(status_code=400, detail="URL too long")

        if not re.match(r'^https?://', url, re.IGNORECASE):
            raise HTTPException(status_code=400, detail="Invalid URL scheme")

        # Block local/private hosts (SSRF prevention)
        if not InputValidator.is_public_url(url):
            logger.warning(f"Blocked dashboard URL: {url[:200]}")
            raise HTTPException(status_code=400, detail="Invalid URL")

        return True
