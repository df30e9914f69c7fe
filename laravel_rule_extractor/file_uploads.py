"""File upload rule analysis (file, image, mimes, mimetypes, dimensions)"""

from typing import Any, Dict, List, Optional, Sequence

from .models import FileDimensions, FileRuleToken, FileUploadInfo
from .rule_tokens import FILE_RULES, normalize_rules, rule_name, rule_parameter_list, rule_parameters

IMAGE_MIME_TYPES = (
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/bmp',
    'image/svg+xml',
    'image/webp',
)

MIME_TYPE_MAPPING = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'bmp': 'image/bmp',
    'svg': 'image/svg+xml',
    'webp': 'image/webp',
    'pdf': 'application/pdf',
    'doc': 'application/msword',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'xls': 'application/vnd.ms-excel',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'ppt': 'application/vnd.ms-powerpoint',
    'pptx': 'application/vnd.openxmlformats-officedocument.presentationml.presentation',
    'csv': 'text/csv',
    'txt': 'text/plain',
    'zip': 'application/zip',
    'rar': 'application/x-rar-compressed',
    'mp4': 'video/mp4',
    'avi': 'video/x-msvideo',
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'json': 'application/json',
    'xml': 'application/xml',
}

DEFAULT_MIME_TYPE = 'application/octet-stream'

_DIMENSION_KEYS = ('width', 'height', 'min_width', 'min_height', 'max_width', 'max_height')


def _unique(values: List[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class FileUploadAnalyzer:
    """Recognize file fields and collect their upload constraints"""

    def is_file_field(self, tokens: Sequence[Any]) -> bool:
        return any(isinstance(t, FileRuleToken) or rule_name(t) in FILE_RULES for t in tokens)

    def analyze_rules(self, rules: Dict[str, Any]) -> Dict[str, FileUploadInfo]:
        """FileUploadInfo for every file field of a rule set"""
        result = {}
        for field_name, value in rules.items():
            info = self.analyze_field(field_name, normalize_rules(value))
            if info is not None:
                result[field_name] = info
        return result

    def analyze_field(self, field_name: str, tokens: Sequence[Any]) -> Optional[FileUploadInfo]:
        if not self.is_file_field(tokens):
            return None

        is_image = False
        mimes: List[str] = []
        mime_types: List[str] = []
        min_kb = max_kb = None
        dimensions = None

        for token in tokens:
            if isinstance(token, FileRuleToken):
                is_image = is_image or token.image
                mimes.extend(token.extensions)
                if token.min_kb is not None:
                    min_kb = token.min_kb
                if token.max_kb is not None:
                    max_kb = token.max_kb
                continue

            name = rule_name(token)
            if name == 'image':
                is_image = True
            elif name == 'mimes':
                mimes.extend(p.lower() for p in rule_parameter_list(token) if p)
            elif name == 'mimetypes':
                mime_types.extend(p for p in rule_parameter_list(token) if p)
            elif name == 'max':
                max_kb = _kilobytes(rule_parameters(token), max_kb)
            elif name == 'min':
                min_kb = _kilobytes(rule_parameters(token), min_kb)
            elif name in ('size', 'between'):
                bounds = rule_parameter_list(token)
                min_kb = _kilobytes(bounds[0], min_kb)
                max_kb = _kilobytes(bounds[-1], max_kb)
            elif name == 'dimensions':
                dimensions = self.parse_dimensions(rule_parameters(token))

        mimes = _unique(mimes)
        mime_types = _unique(mime_types + self.infer_mime_types(mimes))
        if is_image and not mime_types:
            mime_types = list(IMAGE_MIME_TYPES)

        return FileUploadInfo(
            is_image=is_image,
            mimes=tuple(mimes),
            mime_types=tuple(mime_types),
            min_size=min_kb * 1024 if min_kb is not None else None,
            max_size=max_kb * 1024 if max_kb is not None else None,
            dimensions=dimensions,
            multiple=self.is_multiple(field_name),
        )

    def infer_mime_types(self, extensions: Sequence[str]) -> List[str]:
        return [MIME_TYPE_MAPPING.get(ext.lower(), DEFAULT_MIME_TYPE) for ext in extensions]

    def is_multiple(self, field_name: str) -> bool:
        return '*' in field_name.split('.')

    def parse_dimensions(self, parameters: str) -> Optional[FileDimensions]:
        """'min_width=100,max_height=500,ratio=3/2' -> FileDimensions"""
        values: Dict[str, Any] = {}
        for pair in parameters.split(','):
            if '=' not in pair:
                continue
            key, value = (part.strip() for part in pair.split('=', 1))
            if key == 'ratio':
                values['ratio'] = value
            elif key in _DIMENSION_KEYS:
                try:
                    values[key] = int(float(value))
                except ValueError:
                    continue
        if not values:
            return None
        return FileDimensions(**values)


def _kilobytes(text: str, current: Optional[int]) -> Optional[int]:
    try:
        return int(float(text))
    except (TypeError, ValueError):
        return current
