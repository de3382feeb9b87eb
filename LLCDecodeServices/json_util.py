"""
JSON-schema helpers for the query and codec configs.

Configs are plain dicts (or ruamel.yaml CommentedMaps, which subclass dict),
validated with jsonschema.  Missing properties are filled in from the
"default" of their schema.
"""
import io
import copy

from jsonschema import validators
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

NO_DEFAULT = "{{NO_DEFAULT}}"

_flow_yaml = YAML()
_flow_yaml.default_flow_style = True


def flow_style(ob):
    """
    Round-trip the object through ruamel.yaml, so that it is dumped
    in flow style (e.g. [0, 1, 2]) inside an otherwise block-style document.
    """
    sio = io.StringIO()
    _flow_yaml.dump(ob, sio)
    sio.seek(0)
    return _flow_yaml.load(sio)


def _is_numeric_list(subschema):
    # Lists of numbers (or of number pairs)
    items = subschema.get("items", {})
    if items.get("type") == "array":
        items = items.get("items", {})
    return items.get("type") in ("integer", "number")


def extend_with_default(validator_class):
    """
    Return a validator class that fills in missing properties
    from their schema "default" before validating them.
    """
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults_and_validate(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for name, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(name, copy.deepcopy(subschema["default"]))

        for error in validate_properties(validator, properties, instance, schema):
            yield error

    return validators.extend(validator_class, {"properties" : set_defaults_and_validate})


def validate_and_inject_defaults(instance, schema, cls=None):
    """
    Validate the instance, first filling its missing properties
    (at every level) with their defaults.  Modifies instance IN-PLACE.

    Raises jsonschema.ValidationError if the result is invalid.
    """
    if cls is None:
        cls = validators.validator_for(schema)
    cls.check_schema(schema)
    extend_with_default(cls)(schema).validate(instance)


def _template_value(subschema, parent, include_yaml_comments, yaml_indent):
    if "default" not in subschema:
        return NO_DEFAULT

    default = copy.deepcopy(subschema["default"])
    if isinstance(default, list) and _is_numeric_list(subschema):
        default = flow_style(default)
    if include_yaml_comments and isinstance(default, dict):
        default = _commented_map(default, parent.key_indent + yaml_indent, yaml_indent)
    return default


def _commented_map(d, key_indent, yaml_indent):
    cm = CommentedMap()
    for key, value in d.items():
        if isinstance(value, dict):
            value = _commented_map(value, key_indent + yaml_indent, yaml_indent)
        cm[key] = value
    cm.key_indent = key_indent
    return cm


def _extend_for_template(validator_class, include_yaml_comments, yaml_indent):
    validate_properties = validator_class.VALIDATORS["properties"]

    def fill_properties(validator, properties, instance, schema):
        if not isinstance(instance, dict):
            return

        for name, subschema in properties.items():
            if name not in instance:
                instance[name] = _template_value(subschema, instance, include_yaml_comments, yaml_indent)
            if include_yaml_comments and "description" in subschema:
                comment = '\n' + subschema["description"].rstrip('\n')
                instance.yaml_set_comment_before_after_key(name, comment, instance.key_indent)

        # Descend into sub-objects; their errors are irrelevant to a template.
        for _error in validate_properties(validator, properties, instance, schema):
            pass

    def ignore_required(validator, required, instance, schema):
        return

    return validators.extend(validator_class, { "properties" : fill_properties,
                                                "required": ignore_required })


def inject_defaults(instance, schema, include_yaml_comments=False, yaml_indent=2):
    """
    Build a config template from the schema.

    Returns a copy of instance in which every missing property is filled
    with its default, or with NO_DEFAULT if the schema gives none.
    Validation errors and 'required' properties are ignored.

    If include_yaml_comments is True, the result (and every sub-object
    it adds) is a CommentedMap, with each property's "description"
    as a comment above its key.
    """
    cls = validators.validator_for(schema)
    cls.check_schema(schema)

    if include_yaml_comments:
        instance = CommentedMap(instance)
        instance.key_indent = 0
    else:
        instance = dict(instance)

    for _error in _extend_for_template(cls, include_yaml_comments, yaml_indent)(schema).iter_errors(instance):
        pass
    return instance
