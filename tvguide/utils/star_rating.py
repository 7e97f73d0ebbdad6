"""Movie star-rating strings such as '***+'."""

MAX_STAR_RATING = 4.0


class StarRatingFormatError(ValueError):
    """Raised when a star-rating string cannot be parsed"""
    pass


def parse_star_rating(text: str) -> float:
    """
    Parse a star rating: each '*' is worth 1.0 and a single trailing '+' 0.5

    Args:
        text: Rating string, e.g. '***+'

    Returns:
        Numeric rating between 0.5 and MAX_STAR_RATING

    Raises:
        StarRatingFormatError: On an unexpected character, content after the
            '+', or a value above MAX_STAR_RATING
    """
    if not text:
        raise StarRatingFormatError("Empty star rating")

    value = 0.0
    half_seen = False
    for position, char in enumerate(text):
        if half_seen:
            raise StarRatingFormatError(
                f"Unexpected '{char}' after '+' at position {position} in '{text}'"
            )
        if char == "*":
            value += 1.0
        elif char == "+":
            value += 0.5
            half_seen = True
        else:
            raise StarRatingFormatError(f"Invalid character '{char}' in star rating '{text}'")

    if value > MAX_STAR_RATING:
        raise StarRatingFormatError(f"Star rating '{text}' exceeds maximum of {MAX_STAR_RATING}")
    return value
