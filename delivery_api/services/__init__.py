"""
Domain services. Each service wraps a session, builds its repositories, and
owns the commit for the operations it exposes.
"""
