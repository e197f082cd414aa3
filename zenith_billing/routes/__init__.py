from zenith_billing.routes.checkout import bp as checkout_bp
from zenith_billing.routes.dashboard import dashboard_bp, paywall_bp
from zenith_billing.routes.subscription import subscription_bp
from zenith_billing.routes.webhooks import webhooks_bp


def register_blueprints(app):
    app.register_blueprint(checkout_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(paywall_bp)
    return app
