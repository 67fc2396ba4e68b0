"""Work session tracker package.

Organized by feature modules (sessions, attendance) over a document store,
with a thin Flask controller layer and service/repository layers underneath.
"""
