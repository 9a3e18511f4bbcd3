"""
Configuration for the review monitor backend
"""

import os

# Database settings
database_url = os.environ.get('DATABASE_URL', 'sqlite:///reviews.db')
# Hosted Postgres hands out postgres:// but SQLAlchemy wants postgresql://
if database_url.startswith('postgres://'):
    database_url = database_url.replace('postgres://', 'postgresql://', 1)

DATABASE_CONFIG = {
    'url': database_url,
    'echo': os.environ.get('DATABASE_ECHO', '').lower() in ('1', 'true', 'yes'),  # SQL debugging
}

# Logging settings
LOGGING_CONFIG = {
    'log_dir': os.environ.get('LOG_DIR', 'logs'),
    'log_level': os.environ.get('LOG_LEVEL', 'INFO'),
    'format': '%(asctime)s - %(levelname)s - %(message)s',
    'log_to_console': True,
    'log_to_file': True,
}

# AI Service settings
AI_CONFIG = {
    'openai_api_key': os.environ.get('OPENAI_API_KEY'),
    'model': os.environ.get('OPENAI_MODEL', 'gpt-3.5-turbo'),
    'max_tokens': 300,  # replies are short
    'temperature': 0.7,
}

# Review engine settings
REVIEW_CONFIG = {
    'items_per_page': 10,
    'low_rating_threshold': 3,  # ratings <= threshold count as low
    'min_rating': 1,
    'max_rating': 5,
}
