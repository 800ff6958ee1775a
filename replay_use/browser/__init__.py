from replay_use.browser.page import PlaywrightPage, PlaywrightProtocolSession
from replay_use.browser.views import PageCapability, ProtocolSession, Viewport

__all__ = ['PageCapability', 'ProtocolSession', 'Viewport', 'PlaywrightPage', 'PlaywrightProtocolSession']
