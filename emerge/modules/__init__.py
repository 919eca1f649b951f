"""
Engine modules: progression, insight, notifications, and the shared
foundations they build on.
"""
