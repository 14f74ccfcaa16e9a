"""
Card tokenization.

The token is a deterministic SHA-256 fingerprint of card number and CVV so
the raw number is never stored. It is a placeholder, not a vault reference:
the same card always yields the same token.
"""
import hashlib

from payment_ledger.errors import InvalidInputError

CARD_BRANDS = {
    "4": "Visa",
    "5": "Mastercard",
    "3": "American Express",
}
UNKNOWN_BRAND = "Unknown"


class CardTokenizer:
    """Derives an opaque token and display metadata from raw card input."""

    @staticmethod
    def tokenize(card_number: str, cvv: str) -> str:
        """
        Build the token for a card.

        Args:
            card_number: Raw card number
            cvv: Card verification value

        Returns:
            str: 64-character hex digest
        """
        digest = hashlib.sha256()
        digest.update(card_number.encode())
        digest.update(cvv.encode())
        return digest.hexdigest()

    @staticmethod
    def brand(card_number: str) -> str:
        """Look up the card brand from the first digit."""
        return CARD_BRANDS.get(card_number[:1], UNKNOWN_BRAND)

    @staticmethod
    def last_four(card_number: str) -> str:
        """
        Return the trailing four characters of the card number.

        Raises:
            InvalidInputError: If the number has fewer than four characters
        """
        if len(card_number) < 4:
            raise InvalidInputError("Card number must have at least 4 characters")
        return card_number[-4:]
