# Review Monitor
# ==============
# Backend for tracking businesses on review platforms:
# - database: ORM models, sessions and business/platform helpers
# - review_service: paginated review retrieval and rating statistics
# - ai_service: AI-drafted replies to reviews
# - seed: demo data for local development

__version__ = "0.1.0"
