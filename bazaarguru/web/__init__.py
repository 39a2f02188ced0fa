"""Click tracking and conversion postback web server."""
