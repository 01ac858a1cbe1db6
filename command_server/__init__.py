"""
Command server for vaani-server.

Accepts one websocket connection per voice command and runs a Session for it:
audio in, recognition, interpretation, execution against the calendar
service, and a spoken answer back over the same connection.
"""
