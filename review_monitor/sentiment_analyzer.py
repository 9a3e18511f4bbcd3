import re

from textblob import TextBlob


class SentimentAnalyzer:
    def clean_text(self, text):
        """Collapse whitespace so polarity is not skewed by formatting"""
        if not text:
            return ""
        return re.sub(r'\s+', ' ', text).strip()

    def analyze_sentiment(self, text):
        """Analyze sentiment of text using TextBlob"""
        text = self.clean_text(text)
        if not text:
            return 0.0

        blob = TextBlob(text)
        return blob.sentiment.polarity

    def get_sentiment_category(self, sentiment_score):
        """Convert sentiment score to category"""
        if sentiment_score > 0.3:
            return "positive"
        elif sentiment_score <= -0.1:
            return "negative"
        else:
            return "neutral"

    def process_review(self, review_text):
        sentiment_score = self.analyze_sentiment(review_text)
        return {
            'sentiment_score': sentiment_score,
            'sentiment_category': self.get_sentiment_category(sentiment_score)
        }
