#!/usr/bin/env python3
"""
Concrete Generators
Faker-backed generators producing realistic replacement values.
"""

import hashlib
import html
import json
import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

import faker
from faker.exceptions import UniquenessException

from ..core.errors import ConfigurationError
from .base import FakerInterface, create_faker
from .composite import HASH_ALGORITHMS
from .providers import LANGUAGES, UTM_MEDIUMS, UTM_SOURCES


COUNTRY_LOCALES = {
    'US': 'en_US',
    'GB': 'en_GB',
    'ES': 'es_ES',
    'FR': 'fr_FR',
    'DE': 'de_DE',
    'IT': 'it_IT',
    'NL': 'nl_NL',
    'PT': 'pt_PT'
}

# PHP-style date tokens accepted in the 'format' option of the date generator
PHP_DATE_TOKENS = {
    'Y': '%Y', 'y': '%y', 'm': '%m', 'n': '%-m', 'd': '%d', 'j': '%-d',
    'H': '%H', 'G': '%-H', 'i': '%M', 's': '%S', 'D': '%a', 'l': '%A',
    'M': '%b', 'F': '%B'
}

RELATIVE_UNITS = {
    'year': 'y', 'years': 'y', 'month': 'M', 'months': 'M', 'week': 'w', 'weeks': 'w',
    'day': 'd', 'days': 'd', 'hour': 'h', 'hours': 'h', 'minute': 'm', 'minutes': 'm',
    'second': 's', 'seconds': 's'
}

COMPANY_SUFFIX_RE = re.compile(r'\s+(Inc\.?|LLC|Ltd\.?|Corp\.?|Corporation|PLC|Group)$', re.IGNORECASE)

COMPANY_TYPES = {
    'corporation': 'Corp.',
    'corp': 'Corp.',
    'llc': 'LLC',
    'inc': 'Inc.',
    'ltd': 'Ltd.'
}


class _CountryFakerMixin:
    """Faker instances per country, for generators with a 'country' option."""

    def _faker_for_country(self, country: Optional[str]) -> faker.Faker:
        if not country:
            return self.fake

        if not hasattr(self, '_country_fakers'):
            self._country_fakers = {}
        cache = self._country_fakers
        locale = COUNTRY_LOCALES.get(str(country).upper(), 'en_US')
        if locale not in cache:
            seed = self.registry.seed if self.registry is not None else None
            cache[locale] = create_faker(locale, seed)
        return cache[locale]


class EmailFaker(FakerInterface):
    """Safe, unique email addresses; 'domain' pins the domain part."""

    def generate(self, options: Dict[str, Any]) -> str:
        domain = options.get('domain')
        if domain:
            return f"{self.fake.user_name()}{self.rng(options).randint(1, 9999)}@{domain}"

        try:
            return self.fake.unique.safe_email()
        except UniquenessException:
            self.logger.debug("Unique email pool exhausted, clearing")
            self.fake.unique.clear()
            return self.fake.unique.safe_email()


class NameFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        gender = str(options.get('gender', 'random')).lower()
        if gender == 'male':
            return self.fake.first_name_male()
        if gender == 'female':
            return self.fake.first_name_female()
        return self.fake.first_name()


class SurnameFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        return self.fake.last_name()


class AgeFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> int:
        return self.rng(options).randint(int(options.get('min', 18)), int(options.get('max', 100)))


class PhoneFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        return self.fake.phone_number()


class IbanFaker(_CountryFakerMixin, FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        return self._faker_for_country(options.get('country', 'ES')).iban()


class CreditCardFaker(FakerInterface):
    """Card numbers, optionally of one card type and grouped in fours."""

    def generate(self, options: Dict[str, Any]) -> str:
        number = self.fake.credit_card_number(card_type=options.get('card_type'))
        if options.get('formatted'):
            return ' '.join(number[i:i + 4] for i in range(0, len(number), 4))
        return number


class AddressFaker(_CountryFakerMixin, FakerInterface):
    """Street address, optionally with postal code and city."""

    def generate(self, options: Dict[str, Any]) -> str:
        fake = self._faker_for_country(options.get('country'))
        address = fake.street_address()
        if options.get('format', 'full') == 'short':
            return address

        if options.get('include_postal_code'):
            address += f", {fake.postcode()}"
        return f"{address}, {fake.city()}"


class DateFaker(FakerInterface):
    """
    Random dates.

    Options:
        format:   strftime or PHP-style format (default '%Y-%m-%d')
        type:     past, future or between (default)
        min_date: lower bound, 'YYYY-MM-DD' or relative ('-100 years', '-30y')
        max_date: upper bound (default 'now')
    """

    def generate(self, options: Dict[str, Any]) -> str:
        date_type = options.get('type', 'between')
        min_date = self._parse_date(options.get('min_date', '-100 years'))
        max_date = self._parse_date(options.get('max_date', 'now'))

        if date_type == 'past':
            value = self.fake.date_time_between(start_date=min_date, end_date='now')
        elif date_type == 'future':
            if 'max_date' not in options:
                max_date = '+1y'
            value = self.fake.date_time_between(start_date='now', end_date=max_date)
        else:
            value = self.fake.date_time_between(start_date=min_date, end_date=max_date)

        return value.strftime(self._strftime_format(options.get('format', '%Y-%m-%d')))

    @staticmethod
    def _parse_date(value: Any) -> Union[str, date, datetime]:
        if isinstance(value, (date, datetime)):
            return value

        text = str(value).strip()
        if text in ('now', 'today'):
            return 'now'

        if re.match(r'^\d{4}-\d{2}-\d{2}$', text):
            return datetime.strptime(text, '%Y-%m-%d')

        match = re.match(r'^([+-]\d+)\s*([A-Za-z]+)$', text)
        if match:
            unit = RELATIVE_UNITS.get(match.group(2).lower(), match.group(2))
            return f"{match.group(1)}{unit}"

        if re.match(r'^\d+$', text):
            return datetime.fromtimestamp(int(text))

        raise ValueError(f"Unrecognised date bound: {value!r}")

    @staticmethod
    def _strftime_format(date_format: str) -> str:
        if '%' in date_format:
            return date_format
        return ''.join(PHP_DATE_TOKENS.get(char, char) for char in date_format)


class UsernameFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        source = self.rng(options)
        min_length = int(options.get('min_length', 5))
        max_length = int(options.get('max_length', 20))
        prefix = options.get('prefix', '')
        suffix = options.get('suffix', '')

        base = self.fake.user_name()[:source.randint(min_length, max_length)]
        if options.get('include_numbers', True) and source.random() < 0.7:
            base += str(source.randint(0, 999))

        return f"{prefix}{base}{suffix}"[:max_length]


class UrlFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        scheme = options.get('scheme', 'https')
        domain = options.get('domain') or self.fake.domain_name()
        url = f"{scheme}://{domain}"
        if options.get('path', True):
            url += f"/{self.fake.uri_path()}"
        return url


class CompanyFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        company = self.fake.company()
        suffix = options.get('suffix')
        if suffix:
            return f"{COMPANY_SUFFIX_RE.sub('', company)} {suffix}"

        company_type = options.get('type')
        if company_type and str(company_type).lower() in COMPANY_TYPES:
            return f"{COMPANY_SUFFIX_RE.sub('', company)} {COMPANY_TYPES[str(company_type).lower()]}"

        return company


class PasswordFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        return self.fake.password(
            length=int(options.get('length', 12)),
            special_chars=bool(options.get('include_special', True)),
            digits=bool(options.get('include_numbers', True)),
            upper_case=bool(options.get('include_uppercase', True)),
            lower_case=True
        )

    def validate_options(self, options: Dict[str, Any]) -> None:
        if int(options.get('length', 12)) < 4:
            raise ConfigurationError("Generator 'PasswordFaker' requires a length of at least 4")


class IpAddressFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        version = int(options.get('version', 4))
        ip_type = options.get('type', 'public')

        if version == 6:
            return '::1' if ip_type == 'localhost' else self.fake.ipv6()

        if ip_type == 'localhost':
            return '127.0.0.1'
        if ip_type == 'private':
            return self.fake.ipv4_private()
        return self.fake.ipv4_public()


class MacAddressFaker(FakerInterface):
    SEPARATORS = {'colon': ':', 'dash': '-', 'none': ''}

    def generate(self, options: Dict[str, Any]) -> str:
        source = self.rng(options)
        separator = self.SEPARATORS.get(options.get('separator', 'colon'), ':')
        octets = [f"{source.randint(0, 255):02x}" for _ in range(6)]

        mac = separator.join(octets)
        return mac.upper() if options.get('uppercase', True) else mac


class UuidFaker(FakerInterface):
    """UUIDs; format is with_dashes (default), without_dashes or urn."""

    def generate(self, options: Dict[str, Any]) -> str:
        if int(options.get('version', 4)) == 1:
            value = uuid.uuid1()
        else:
            value = uuid.UUID(int=self.rng(options).getrandbits(128), version=4)

        uuid_format = options.get('format', 'with_dashes')
        if uuid_format == 'without_dashes':
            return value.hex
        if uuid_format == 'urn':
            return value.urn
        return str(value)


class HashFaker(FakerInterface):
    """Random hash string; unrelated to the original value."""

    def generate(self, options: Dict[str, Any]) -> str:
        algorithm = str(options.get('algorithm', 'sha256')).lower()
        if algorithm not in HASH_ALGORITHMS:
            algorithm = 'sha256'

        seed_text = f"{self.fake.text(max_nb_chars=100)}{self.rng(options).getrandbits(64)}"
        digest = hashlib.new(algorithm, seed_text.encode('utf-8')).hexdigest()

        length = options.get('length')
        return digest[:int(length)] if length else digest


class CoordinateFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> Union[str, Dict[str, float]]:
        source = self.rng(options)
        precision = int(options.get('precision', 6))
        latitude = round(source.uniform(float(options.get('min_lat', -90.0)), float(options.get('max_lat', 90.0))), precision)
        longitude = round(source.uniform(float(options.get('min_lng', -180.0)), float(options.get('max_lng', 180.0))), precision)

        coordinate_format = options.get('format', 'string')
        if coordinate_format == 'array':
            return {'latitude': latitude, 'longitude': longitude}
        if coordinate_format == 'json':
            return json.dumps({'latitude': latitude, 'longitude': longitude})
        return f"{latitude:.{precision}f},{longitude:.{precision}f}"


class ColorFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        source = self.rng(options)
        color_format = options.get('format', 'hex')
        red, green, blue = (source.randint(0, 255) for _ in range(3))

        if color_format == 'rgb':
            return f"rgb({red}, {green}, {blue})"
        if color_format == 'rgba':
            return f"rgba({red}, {green}, {blue}, {float(options.get('alpha', 1.0)):.2f})"
        return f"#{red:02x}{green:02x}{blue:02x}"


class BooleanFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> bool:
        return self.rng(options).random() * 100 < int(options.get('true_probability', 50))


class NumericFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> Union[int, float]:
        source = self.rng(options)
        minimum = options.get('min', 0)
        maximum = options.get('max', 1000)

        if options.get('type', 'int') == 'float':
            return round(source.uniform(float(minimum), float(maximum)), int(options.get('precision', 2)))
        return source.randint(int(minimum), int(maximum))

    def validate_options(self, options: Dict[str, Any]) -> None:
        if float(options.get('min', 0)) > float(options.get('max', 1000)):
            raise ConfigurationError("Generator 'NumericFaker' requires min <= max")


class FileFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        extension = str(options.get('extension') or self.fake.file_extension()).lstrip('.')
        filename = f"{self.fake.word()}.{extension}"

        directory = options.get('directory')
        if directory:
            path = f"{str(directory).rstrip('/')}/{filename}"
        elif options.get('absolute'):
            path = f"/{self.fake.word()}/{filename}"
        else:
            return filename

        if options.get('absolute') and not path.startswith('/'):
            path = f"/{path}"
        return path


class JsonFaker(FakerInterface):
    """JSON documents, random or following a {key: {type: ...}} schema."""

    def generate(self, options: Dict[str, Any]) -> str:
        source = self.rng(options)
        depth = int(options.get('depth', 2))
        schema = options.get('schema')

        if isinstance(schema, dict):
            data = self._from_schema(schema, depth, source)
        else:
            data = self._random_structure(depth, int(options.get('max_items', 5)), source)
        return json.dumps(data)

    def _from_schema(self, schema: Dict[str, Any], depth: int, source) -> Dict[str, Any]:
        if depth <= 0:
            return {}

        data = {}
        for key, value in schema.items():
            if isinstance(value, dict) and 'type' in value:
                data[key] = self._value_by_type(value['type'], depth - 1, source)
            elif isinstance(value, dict):
                data[key] = self._from_schema(value, depth - 1, source)
            else:
                data[key] = self.fake.word()
        return data

    def _random_structure(self, depth: int, max_items: int, source) -> Dict[str, Any]:
        if depth <= 0:
            return {'value': self.fake.word()}

        structure = {}
        for _ in range(source.randint(2, max(2, max_items))):
            value_type = source.choice(['string', 'number', 'boolean', 'array', 'object'])
            if value_type == 'object':
                structure[self.fake.word()] = self._random_structure(depth - 1, max_items, source)
            else:
                structure[self.fake.word()] = self._value_by_type(value_type, depth - 1, source)
        return structure

    def _value_by_type(self, value_type: str, depth: int, source) -> Any:
        if value_type == 'string':
            return self.fake.sentence()
        if value_type in ('number', 'integer'):
            return source.randint(0, 1000)
        if value_type == 'float':
            return round(source.uniform(0, 1000), 2)
        if value_type == 'boolean':
            return source.random() < 0.5
        if value_type == 'array':
            return source.sample(['a', 'b', 'c', 'd', 'e'], source.randint(1, 3))
        if value_type == 'object':
            return self._random_structure(depth, 3, source) if depth > 0 else {}
        return self.fake.word()


class TextFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        words = self.rng(options).randint(int(options.get('min_words', 5)), int(options.get('max_words', 20)))
        if options.get('type', 'sentence') == 'paragraph':
            return self.fake.paragraph(nb_sentences=max(1, words // 5))
        return self.fake.sentence(nb_words=words)


class CountryFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        country_format = options.get('format', 'code')
        if country_format == 'name':
            return self.fake.country()
        if country_format == 'iso3':
            return self.fake.country_code(representation='alpha-3')
        return self.fake.country_code(representation='alpha-2')


class LanguageFaker(FakerInterface):
    def generate(self, options: Dict[str, Any]) -> str:
        code = self.fake.spoken_language()
        return LANGUAGES[code] if options.get('format', 'code') == 'name' else code


class DniCifFaker(FakerInterface):
    """
    Spanish identity (DNI/NIF) and company (CIF) codes.

    With type 'auto' the kind is guessed from the original value. Anything
    that does not look like a CIF is treated as a DNI.
    """

    CIF_RE = re.compile(r'^[A-Z]\d{7}[A-Z0-9]$')
    DNI_RE = re.compile(r'^\d{8}[A-Z]$')

    def generate(self, options: Dict[str, Any]) -> str:
        id_type = str(options.get('type', 'auto')).lower()
        original_value = options.get('original_value')

        if id_type == 'auto':
            id_type = self.detect_type(original_value) if isinstance(original_value, str) else 'dni'

        value = self.fake.cif() if id_type == 'cif' else self.fake.dni()

        if options.get('formatted'):
            if id_type == 'cif':
                return f"{value[0]}-{value[1:8]}-{value[8]}"
            return f"{value[:8]}-{value[8]}"
        return value

    @classmethod
    def detect_type(cls, value: str) -> str:
        normalized = re.sub(r'[\s.\-]', '', value).upper()
        if cls.CIF_RE.match(normalized):
            return 'cif'
        return 'dni'


class UtmFaker(FakerInterface):
    """UTM campaign parameters (source, medium, campaign, term, content)."""

    def generate(self, options: Dict[str, Any]) -> str:
        source = self.rng(options)
        utm_type = options.get('type', 'source')

        if utm_type == 'medium':
            value = source.choice(options.get('custom_mediums') or UTM_MEDIUMS)
        elif utm_type == 'campaign':
            value = source.choice(options['custom_campaigns']) if options.get('custom_campaigns') else self.fake.utm_campaign()
        elif utm_type == 'term':
            value = '_'.join(self.fake.words(nb=source.randint(1, 3)))
        elif utm_type == 'content':
            value = self.fake.utm_content()
        else:
            value = source.choice(options.get('custom_sources') or UTM_SOURCES)

        value = self._apply_format(value, options.get('format', 'snake_case'))
        return f"{options.get('prefix', '')}{value}{options.get('suffix', '')}"

    @staticmethod
    def _apply_format(value: str, value_format: str) -> str:
        parts = value.split('_')
        if value_format == 'kebab-case':
            return value.replace('_', '-')
        if value_format == 'camelCase':
            return parts[0] + ''.join(part[:1].upper() + part[1:] for part in parts[1:])
        if value_format == 'PascalCase':
            return ''.join(part[:1].upper() + part[1:] for part in parts)
        if value_format == 'lowercase':
            return value.replace('_', '').lower()
        return value


class HtmlFaker(FakerInterface):
    """HTML snippets: email signatures, paragraphs, lists or a mix."""

    def generate(self, options: Dict[str, Any]) -> str:
        source = self.rng(options)
        html_type = options.get('type', 'signature')
        include_links = options.get('include_links', True)
        paragraphs = (int(options.get('min_paragraphs', 1)), int(options.get('max_paragraphs', 3)))
        list_items = (int(options.get('min_list_items', 2)), int(options.get('max_list_items', 5)))

        if html_type == 'paragraph':
            return ''.join(self._paragraphs(source.randint(*paragraphs)))
        if html_type == 'list':
            return self._list(source.randint(*list_items), include_links, source)
        if html_type == 'mixed':
            parts = self._paragraphs(source.randint(*paragraphs))
            parts.append(self._list(source.randint(*list_items), include_links, source))
            return ''.join(parts)
        return self._signature(include_links)

    def _signature(self, include_links: bool) -> str:
        name = html.escape(self.fake.name())
        phone = html.escape(self.fake.phone_number())
        email = html.escape(self.fake.safe_email())
        website = html.escape(self.fake.url())

        lines = [
            '<div>',
            f"<p><strong>{name}</strong><br>{html.escape(self.fake.job())}<br>{html.escape(self.fake.company())}</p>"
        ]
        if include_links:
            lines.append(
                f'<p>Phone: <a href="tel:{phone}">{phone}</a><br>'
                f'Email: <a href="mailto:{email}">{email}</a><br>'
                f'Website: <a href="{website}">{website}</a></p>'
            )
        else:
            lines.append(f"<p>Phone: {phone}<br>Email: {email}<br>Website: {website}</p>")
        lines.append('</div>')
        return ''.join(lines)

    def _paragraphs(self, count: int) -> List[str]:
        return [f"<p>{html.escape(self.fake.paragraph(nb_sentences=3))}</p>" for _ in range(count)]

    def _list(self, count: int, include_links: bool, source) -> str:
        tag = source.choice(['ul', 'ol'])
        items = []
        for _ in range(count):
            text = html.escape(self.fake.sentence(nb_words=4))
            if include_links and source.random() < 0.4:
                text = f'<a href="{html.escape(self.fake.url())}">{text}</a>'
            items.append(f"<li>{text}</li>")
        return f"<{tag}>{''.join(items)}</{tag}>"
