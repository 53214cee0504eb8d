from . import alerts, auth, blockchain, geofences, locations, places, tourists

BLUEPRINTS = (
    auth.bp,
    tourists.bp,
    locations.bp,
    alerts.bp,
    geofences.bp,
    blockchain.bp,
    places.bp,
)


def register_blueprints(app):
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
