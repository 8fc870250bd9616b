"""Backend package for the Rumor Round Simulator.

This package contains the pure resolution engine, the round and game
lifecycle controllers, persistence models, optional collaborators
(chain mirror, narrative generation), and the HTTP/WebSocket surface.
"""
