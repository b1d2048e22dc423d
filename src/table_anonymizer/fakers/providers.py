#!/usr/bin/env python3
"""
Custom Faker Provider
Identifiers and marketing values the stock Faker providers do not cover.
"""

from faker.providers import BaseProvider


DNI_LETTERS = 'TRWAGMYFPDXBNJZSQVHLCKE'
CIF_LETTERS = 'ABCDEFGHJKLMNPQRSUVW'

UTM_SOURCES = [
    'google', 'facebook', 'twitter', 'linkedin', 'instagram',
    'youtube', 'newsletter', 'direct', 'referral', 'bing',
    'yahoo', 'reddit', 'pinterest', 'tiktok', 'snapchat'
]

UTM_MEDIUMS = [
    'cpc', 'cpm', 'email', 'social', 'organic', 'referral',
    'affiliate', 'display', 'banner', 'retargeting', 'newsletter',
    'sms', 'push', 'in-app', 'video', 'audio', 'print'
]

UTM_CAMPAIGNS = [
    'spring_sale', 'summer_promotion', 'winter_campaign', 'fall_offer',
    'product_launch', 'new_collection', 'limited_edition', 'flash_sale',
    'black_friday', 'cyber_monday', 'holiday_special', 'back_to_school',
    'anniversary', 'grand_opening', 'clearance', 'rebate'
]


LANGUAGES = {
    'en': 'English', 'es': 'Spanish', 'fr': 'French', 'de': 'German',
    'it': 'Italian', 'pt': 'Portuguese', 'nl': 'Dutch', 'ca': 'Catalan',
    'pl': 'Polish', 'sv': 'Swedish', 'da': 'Danish', 'fi': 'Finnish',
    'el': 'Greek', 'ru': 'Russian', 'ja': 'Japanese', 'zh': 'Chinese',
    'ko': 'Korean', 'ar': 'Arabic', 'tr': 'Turkish', 'hi': 'Hindi'
}


def cif_checksum(number: str) -> str:
    """Control character of a Spanish CIF for its 7-digit body."""
    digits = [int(char) for char in number]
    total = sum(digits[1:7:2])
    for digit in digits[0:7:2]:
        total += sum(int(char) for char in str(digit * 2))

    remainder = total % 10
    return '0' if remainder == 0 else str(10 - remainder)


class AnonymizerProvider(BaseProvider):
    """Custom Faker provider for anonymization-specific data."""

    def dni(self) -> str:
        """Spanish national identity number: 8 digits and a control letter."""
        number = self.random_int(10000000, 99999999)
        return f"{number}{DNI_LETTERS[number % 23]}"

    def cif(self) -> str:
        """Spanish company tax code: organisation letter, 7 digits, checksum."""
        number = str(self.random_int(1000000, 9999999))
        return f"{self.random_element(tuple(CIF_LETTERS))}{number}{cif_checksum(number)}"

    def spoken_language(self) -> str:
        """ISO 639-1 code of a widely spoken language."""
        return self.random_element(list(LANGUAGES))

    def utm_source(self) -> str:
        return self.random_element(UTM_SOURCES)

    def utm_medium(self) -> str:
        return self.random_element(UTM_MEDIUMS)

    def utm_campaign(self) -> str:
        campaign = self.random_element(UTM_CAMPAIGNS)
        if self.generator.random.random() < 0.4:
            campaign += f"_{self.random_int(2020, 2025)}"
        return campaign

    def utm_content(self) -> str:
        return self.random_element([
            f"link_{self.random_int(1, 10)}",
            f"button_{self.random_element(['top', 'bottom', 'middle', 'sidebar'])}",
            f"banner_{self.random_element(['a', 'b', 'c', '1', '2', '3'])}",
            f"image_{self.random_int(1, 5)}",
            f"text_{self.random_int(1, 3)}"
        ])
