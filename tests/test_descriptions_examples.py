"""Tests for descriptions and example values"""

import pytest

from laravel_rule_extractor.descriptions import (
    ValidationDescriptionGenerator, format_field_name, format_file_size,
)
from laravel_rule_extractor.examples import ExampleGenerator, render_date_format
from laravel_rule_extractor.models import EnumInfo, FileDimensions, FileUploadInfo


class TestDescriptions:

    @pytest.fixture
    def descriptions(self):
        return ValidationDescriptionGenerator()

    def test_field_name(self):
        assert format_field_name('company_name') == 'Company Name'
        assert format_field_name('first-name') == 'First Name'

    @pytest.mark.parametrize('size, expected', [
        (512, '512 B'),
        (2048, '2 KB'),
        (1536 * 1024, '1.5 MB'),
        (3 * 1024 ** 3, '3 GB'),
    ])
    def test_file_size(self, size, expected):
        assert format_file_size(size) == expected

    def test_length_notes_only_for_strings(self, descriptions):
        tokens = ['min:3', 'max:20']
        assert descriptions.generate_description('username', tokens) == \
            'Username (min 3 characters, max 20 characters)'
        assert descriptions.generate_description('count', tokens, field_type='integer') == 'Count'

    @pytest.mark.parametrize('token, clause', [
        ('required_unless:role,admin', 'required unless role is admin'),
        ('required_with:a,b', 'required when any of these fields are present: a,b'),
        ('required_without:phone', 'required when any of these fields are not present: phone'),
        ('prohibited_if:type,guest', 'prohibited when type is guest'),
        ('required_if:type:business', 'required when type is business'),
        ('after:today', 'date must be after today'),
        ('before_or_equal:2030-01-01', 'date must be before or equal to 2030-01-01'),
        ('date_format:d/m/Y', 'format: d/m/Y'),
        ('timezone', 'must be a valid timezone'),
    ])
    def test_clauses(self, descriptions, token, clause):
        assert descriptions.generate_description('field', [token]) == f'Field ({clause})'

    def test_notes_share_one_group(self, descriptions):
        description = descriptions.generate_description('nickname', ['required_with:a,b', 'max:30', 'after:today'])
        assert description == ('Nickname (max 30 characters; required when any of these fields are present: a,b; '
                               'date must be after today)')

    def test_file_description(self, descriptions):
        info = FileUploadInfo(
            is_image=True,
            mimes=('png',),
            max_size=2 * 1024 * 1024,
            min_size=10 * 1024,
            dimensions=FileDimensions(min_width=100, min_height=100, ratio='1/1'),
        )
        assert descriptions.generate_file_description('logo', info) == (
            'Logo (Allowed types: png. Max size: 2 MB. Min size: 10 KB. '
            'Min dimensions: 100x100. Aspect ratio: 1/1)'
        )
        assert descriptions.generate_file_description('logo', FileUploadInfo(), 'Company logo') == 'Company logo'

    def test_conditional_description(self, descriptions):
        assert descriptions.generate_conditional_description('name', 1) == 'Name'
        assert descriptions.generate_conditional_description('name', 3, 'Full name') == \
            'Full name (rules vary by condition)'


class TestExamples:

    @pytest.fixture
    def examples(self):
        return ExampleGenerator()

    def test_enum_first_value(self, examples):
        info = EnumInfo('App\\Enums\\Status', ('active', 'inactive'))
        assert examples.generate('status', [], 'string', enum_info=info) == 'active'

    def test_accepted_and_declined(self, examples):
        assert examples.generate('terms', ['accepted'], 'boolean') is True
        assert examples.generate('spam', ['declined_if:x,y'], 'boolean') is False

    @pytest.mark.parametrize('tokens, expected', [
        (['decimal:2'], 19.99),
        (['decimal:0,3'], 19.999),
        (['decimal:4'], 19.9999),
        (['numeric'], 19.99),
    ])
    def test_decimal_scale(self, examples, tokens, expected):
        assert examples.generate('total', tokens, 'number') == expected

    def test_integer_examples(self, examples):
        assert examples.generate('age', ['min:18', 'max:20'], 'integer') == 20
        assert examples.generate('user_id', [], 'integer') == 1
        assert examples.generate('quantity', ['max:5'], 'integer') == 5
        assert examples.generate('level', ['between:3,9'], 'integer') == 4

    @pytest.mark.parametrize('field, tokens, expected', [
        ('width', ['integer', 'min:100', 'max:2000'], 101),
        ('percentage', ['integer', 'min:50', 'max:100'], 51),
        ('page', ['integer', 'min:1'], 2),
        ('parent_id', ['integer', 'min:5'], 5),
        ('age', ['integer', 'gt:30', 'lt:40'], 31),
        ('item_count', ['integer', 'lte:3'], 3),
    ])
    def test_integer_examples_respect_bounds(self, examples, field, tokens, expected):
        assert examples.generate(field, tokens, 'integer') == expected

    @pytest.mark.parametrize('tokens, expected', [
        (['numeric', 'min:100'], 100.0),
        (['numeric', 'max:5'], 5.0),
        (['numeric', 'between:1,10'], 10.0),
        (['decimal:2', 'gt:50'], 50.01),
        (['numeric', 'min:0', 'max:1000'], 19.99),
    ])
    def test_number_examples_respect_bounds(self, examples, tokens, expected):
        assert examples.generate('price', tokens, 'number') == pytest.approx(expected)

    def test_name_hints_match_whole_words(self, examples):
        assert examples.generate('message', ['string'], 'string') == 'string'
        assert examples.generate('userName', ['string'], 'string') == 'John Doe'

    def test_string_examples(self, examples):
        assert examples.generate('contact', ['uuid'], 'string', 'uuid') == '550e8400-e29b-41d4-a716-446655440000'
        assert examples.generate('payload', ['json'], 'string') == {'key': 'value'}
        assert examples.generate('zone', ['timezone'], 'string') == 'Asia/Tokyo'
        assert examples.generate('full_name', ['string'], 'string') == 'John Doe'
        assert examples.generate('misc', ['string'], 'string') == 'string'

    def test_other_types(self, examples):
        assert examples.generate('flag', ['boolean'], 'boolean') is True
        assert examples.generate('items', ['array'], 'array') == []
        assert examples.generate('upload', ['file'], 'file') is None

    def test_render_date_format(self):
        assert render_date_format('Y-m-d') == '2024-01-01'
        assert render_date_format('d/m/Y H:i:s') == '01/01/2024 14:30:00'
        assert render_date_format('Y-m-d\\TH:i') == '2024-01-01T14:30'
        assert render_date_format('D, M j') == 'Mon, Jan 1'
