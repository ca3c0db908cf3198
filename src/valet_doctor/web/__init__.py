"""Web package - Local FastAPI surface for status-bar front ends."""
