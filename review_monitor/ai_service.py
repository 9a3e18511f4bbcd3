import logging
from typing import Optional, Dict, Any

from openai import OpenAI

from review_monitor.config import AI_CONFIG, REVIEW_CONFIG
from review_monitor.errors import InvalidArgument
from review_monitor.sentiment_analyzer import SentimentAnalyzer

logger = logging.getLogger(__name__)

MAX_REVIEW_CHARS = 2000  # keep prompts (and costs) bounded


class AIService:
    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or AI_CONFIG
        self.sentiment_analyzer = SentimentAnalyzer()

        api_key = self.config.get('openai_api_key')
        if not api_key:
            logger.warning("[AI-SERVICE] No OpenAI API key found. Set OPENAI_API_KEY environment variable.")
            self.client = None
            self.api_key_status = "missing"
        else:
            try:
                self.client = OpenAI(api_key=api_key)
                logger.info("[AI-SERVICE] OpenAI client initialized successfully")
                self.api_key_status = "valid"
            except Exception as e:
                logger.error(f"[AI-SERVICE] Failed to initialize OpenAI client: {e}")
                self.client = None
                self.api_key_status = "error"

    def generate_reply(self, review_content: str, rating: int,
                       reviewer_name: Optional[str] = None,
                       business_name: Optional[str] = None) -> str:
        """
        Draft a public reply to a customer review.

        Args:
            review_content: Text of the review being answered
            rating: Star rating of the review (1-5)
            reviewer_name: Name shown on the review, if any
            business_name: Business replying, used for the sign-off

        Returns:
            Reply text. Falls back to a template reply when the OpenAI client is
            unavailable or the API call fails.
        """
        if not isinstance(review_content, str) or not review_content.strip():
            raise InvalidArgument("review content must be a non-empty string")
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidArgument("rating must be an integer between 1 and 5")

        if not self.client:
            return self._get_fallback_reply(review_content, rating, reviewer_name, business_name)

        system_prompt = """You are a customer care specialist who writes public replies to online reviews
            on behalf of a business.

            Your replies should be:
            - Warm, professional and specific to what the customer wrote
            - Short (at most four sentences)
            - Apologetic and solution-oriented for critical reviews, without admitting legal fault
            - Free of placeholders, hashtags and marketing language

            Reply with the text of the response only."""

        user_prompt = f"""
            Business: {business_name or 'our business'}
            Reviewer: {reviewer_name or 'Anonymous'}
            Rating: {rating}/5
            Review: {review_content.strip()[:MAX_REVIEW_CHARS]}

            Write the reply to this review.
            """

        try:
            logger.info(f"[AI-SERVICE] Generating reply for a {rating}-star review")
            response = self.client.chat.completions.create(
                model=self.config.get('model', 'gpt-3.5-turbo'),
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                max_tokens=self.config.get('max_tokens', 300),
                temperature=self.config.get('temperature', 0.7)
            )
            reply = (response.choices[0].message.content or "").strip()
            if not reply:
                logger.warning("[AI-SERVICE] Empty reply from OpenAI. Returning fallback reply.")
                return self._get_fallback_reply(review_content, rating, reviewer_name, business_name)
            logger.info("[AI-SERVICE] Reply generated successfully")
            return reply

        except Exception as e:
            logger.error(f"[AI-SERVICE] Error calling OpenAI API: {e}")
            return self._get_fallback_reply(review_content, rating, reviewer_name, business_name)

    def _reply_tone(self, rating: int, sentiment_category: str) -> str:
        if rating > REVIEW_CONFIG['low_rating_threshold']:
            return "positive" if sentiment_category != "negative" else "mixed"
        if rating == REVIEW_CONFIG['low_rating_threshold'] and sentiment_category != "negative":
            return "mixed"
        return "negative"

    def _get_fallback_reply(self, review_content: str, rating: int,
                            reviewer_name: Optional[str], business_name: Optional[str]) -> str:
        """
        Template reply used when the AI service is not available.
        """
        logger.info("[AI-SERVICE] Using fallback reply")
        sentiment = self.sentiment_analyzer.process_review(review_content)
        tone = self._reply_tone(rating, sentiment['sentiment_category'])

        greeting = f"Hi {reviewer_name}," if reviewer_name else "Hello,"
        sign_off = f"Best regards,\nThe {business_name} team" if business_name else "Best regards,\nThe team"

        if tone == "positive":
            body = ("Thank you so much for your kind words and the great rating! "
                    "We're delighted you had a good experience and look forward to seeing you again.")
        elif tone == "mixed":
            body = ("Thank you for taking the time to share your feedback. "
                    "We're glad parts of your experience went well, and we've noted where we can do better.")
        else:
            body = ("We're sorry to hear your experience did not meet expectations. "
                    "Your feedback has been shared with our team, and we'd appreciate the chance "
                    "to make it right. Please get in touch with us directly.")

        return f"{greeting}\n\n{body}\n\n{sign_off}"


# Global instance - lazy loaded to avoid startup crashes
ai_service = None


def get_ai_service():
    """Get or create the AI service instance"""
    global ai_service
    if ai_service is None:
        ai_service = AIService()
    return ai_service
