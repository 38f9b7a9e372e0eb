"""viewerlog: Twitch stream and viewer session tracker."""

__version__ = "0.1.0"
