"""認可フローの公開API。"""

from __future__ import annotations

from story.auth.browser import BrowserLauncher, NullBrowserLauncher, WebBrowserLauncher
from story.auth.exchange import HttpTokenExchanger, TokenExchanger
from story.auth.flow import AUTHORIZE_TIMEOUT_SECONDS, AuthorizationFlow
from story.auth.handoff import Handoff
from story.auth.listener import CallbackListener, CallbackResponse
from story.auth.models import AuthSession, ClientIdentity, Credentials, FlowType, SessionState
from story.auth.storage import CredentialStore, KeyringCredentialStore, MemoryCredentialStore

__all__ = [
    "AUTHORIZE_TIMEOUT_SECONDS",
    "AuthSession",
    "AuthorizationFlow",
    "BrowserLauncher",
    "CallbackListener",
    "CallbackResponse",
    "ClientIdentity",
    "CredentialStore",
    "Credentials",
    "FlowType",
    "Handoff",
    "HttpTokenExchanger",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
    "NullBrowserLauncher",
    "SessionState",
    "TokenExchanger",
    "WebBrowserLauncher",
]
