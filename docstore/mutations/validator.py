"""
### Batch Validation

`BatchValidator` checks proposed operations against the limits of the remote database
before anything is written:

| Limit                        | Default   |
|------------------------------|-----------|
| `max_operations_per_batch`   | 500       |
| `max_document_size` (bytes)  | 1048576   |
| `max_field_name_length`      | 1500      |
| `max_field_value_length`     | 1048487   |
| `max_array_elements`         | 20000     |
| `max_id_length`              | 1500      |

It also checks that every operation has the fields its kind requires,
that collection names and document ids are legal, and that no field name is reserved (`__name__`).
Nested mappings are checked recursively; violations are reported with a dotted field path.

`validate()` collects every violation; `validate_or_fail()` raises a single `ValidationError` with all of them.
"""

import json
import re
from typing import List, Mapping

from .operation import Operation, OperationKind
from ..exc import ValidationError, Violation, ConfigurationError
from ..transforms import Transform


# Control characters, and a slash for names
_INVALID_NAME_CHARACTERS = re.compile(r'[/\x00-\x1f\x7f]')
_INVALID_FIELD_CHARACTERS = re.compile(r'[\x00-\x1f\x7f]')
_RESERVED_NAME = re.compile(r'^__.*__$')


class BatchValidator:
    """ Stateless limit and shape checks for write operations """

    #: Required fields per operation kind
    RULES = {
        OperationKind.CREATE: ('collection', 'data'),
        OperationKind.UPDATE: ('collection', 'id', 'data'),
        OperationKind.DELETE: ('collection', 'id'),
        OperationKind.SET: ('collection', 'id', 'data'),
    }

    def __init__(self,
                 max_operations_per_batch=500,
                 max_document_size=1048576,
                 max_field_name_length=1500,
                 max_field_value_length=1048487,
                 max_array_elements=20000,
                 max_id_length=1500):
        self.max_operations_per_batch = max_operations_per_batch
        self.max_document_size = max_document_size
        self.max_field_name_length = max_field_name_length
        self.max_field_value_length = max_field_value_length
        self.max_array_elements = max_array_elements
        self.max_id_length = max_id_length

    @property
    def limits(self) -> dict:
        return dict(
            max_operations_per_batch=self.max_operations_per_batch,
            max_document_size=self.max_document_size,
            max_field_name_length=self.max_field_name_length,
            max_field_value_length=self.max_field_value_length,
            max_array_elements=self.max_array_elements,
            max_id_length=self.max_id_length,
        )

    def validate(self, operations) -> List[Violation]:
        """ Validate a list of operations

        :param operations: Operation objects, or dicts
        :return: Every violation found
        """
        operations = list(operations)
        violations = []

        if len(operations) > self.max_operations_per_batch:
            violations.append(Violation(None, None, 'Too many operations: {} (max: {})'
                                        .format(len(operations), self.max_operations_per_batch)))

        for index, operation in enumerate(operations):
            violations.extend(self.validate_operation(operation, index))

        return violations

    def validate_or_fail(self, operations):
        """ Validate, and raise one error with every violation

        :raises ValidationError
        """
        violations = self.validate(operations)
        if violations:
            raise ValidationError(violations, 'Batch validation failed')

    def validate_operation(self, operation, index: int = 0) -> List[Violation]:
        """ Validate a single operation """
        # Kind
        if isinstance(operation, Mapping):
            try:
                operation = Operation.from_dict(operation)
            except (ConfigurationError, TypeError) as e:
                return [Violation(index, 'kind', 'Invalid or missing operation kind: {}'.format(e))]

        violations = []

        # Required fields
        for field in self.RULES[operation.kind]:
            if getattr(operation, field) is None:
                violations.append(Violation(index, field, "Missing required field '{}'".format(field)))

        # Names
        if operation.collection is not None:
            violations.extend(self.validate_collection_name(operation.collection, index))
        if operation.id is not None:
            violations.extend(self.validate_document_id(operation.id, index))

        # Payload
        if operation.data is not None:
            violations.extend(self.validate_document_data(operation.data, index))

        return violations

    def validate_collection_name(self, collection, index: int = 0) -> List[Violation]:
        if not isinstance(collection, str) or not collection:
            return [Violation(index, 'collection', 'Collection name cannot be empty')]

        violations = []
        if _INVALID_NAME_CHARACTERS.search(collection):
            violations.append(Violation(index, 'collection', 'Collection name contains invalid characters'))
        if len(collection) > self.max_id_length:
            violations.append(Violation(index, 'collection', 'Collection name too long (max: {} characters)'
                                        .format(self.max_id_length)))
        if _RESERVED_NAME.match(collection):
            violations.append(Violation(index, 'collection', "Collection name '{}' is reserved".format(collection)))
        return violations

    def validate_document_id(self, id, index: int = 0) -> List[Violation]:
        if not isinstance(id, str) or not id:
            return [Violation(index, 'id', 'Document ID cannot be empty')]

        violations = []
        if _INVALID_NAME_CHARACTERS.search(id):
            violations.append(Violation(index, 'id', 'Document ID contains invalid characters'))
        if len(id) > self.max_id_length:
            violations.append(Violation(index, 'id', 'Document ID too long (max: {} characters)'
                                        .format(self.max_id_length)))
        if id in ('.', '..'):
            violations.append(Violation(index, 'id', "Document ID cannot be '.' or '..'"))
        if _RESERVED_NAME.match(id):
            violations.append(Violation(index, 'id', "Document ID '{}' is reserved".format(id)))
        return violations

    def validate_document_data(self, data, index: int = 0) -> List[Violation]:
        if not isinstance(data, Mapping):
            return [Violation(index, 'data', 'Document data must be a mapping')]

        violations = []
        size = self.calculate_document_size(data)
        if size > self.max_document_size:
            violations.append(Violation(index, 'data', 'Document size ({} bytes) exceeds limit ({} bytes)'
                                        .format(size, self.max_document_size)))
        violations.extend(self.validate_fields(data, index))
        return violations

    def validate_fields(self, data: Mapping, index: int = 0, path: str = '') -> List[Violation]:
        """ Validate field names and values, recursively """
        violations = []
        for name, value in data.items():
            field_path = '{}.{}'.format(path, name) if path else str(name)
            violations.extend(self.validate_field_name(name, index, field_path))
            violations.extend(self.validate_field_value(value, index, field_path))

            # Nested mappings
            if isinstance(value, Mapping):
                violations.extend(self.validate_fields(value, index, field_path))
        return violations

    def validate_field_name(self, name, index: int = 0, path: str = '') -> List[Violation]:
        path = path or str(name)
        if not isinstance(name, str) or not name:
            return [Violation(index, path, "Field name '{}' must be a non-empty string".format(path))]

        violations = []
        if _INVALID_FIELD_CHARACTERS.search(name):
            violations.append(Violation(index, path, "Field name '{}' contains invalid characters".format(path)))
        if len(name) > self.max_field_name_length:
            violations.append(Violation(index, path, "Field name '{}' too long (max: {} characters)"
                                        .format(path, self.max_field_name_length)))
        if _RESERVED_NAME.match(name):
            violations.append(Violation(index, path, "Field name '{}' is reserved".format(path)))
        return violations

    def validate_field_value(self, value, index: int = 0, path: str = '') -> List[Violation]:
        if isinstance(value, str) and len(value) > self.max_field_value_length:
            return [Violation(index, path, "String field '{}' too long (max: {} characters)"
                              .format(path, self.max_field_value_length))]
        if isinstance(value, (list, tuple)) and len(value) > self.max_array_elements:
            return [Violation(index, path, "Array field '{}' has too many elements (max: {})"
                              .format(path, self.max_array_elements))]
        return []

    @staticmethod
    def calculate_document_size(data: Mapping) -> int:
        """ Document size: the byte length of its JSON serialization """
        return len(json.dumps(data, default=_json_default, ensure_ascii=False).encode('utf-8'))


def _json_default(value):
    if isinstance(value, Transform):
        return value.name
    if isinstance(value, (bytes, bytearray)):
        return value.decode('latin-1')
    return str(value)
