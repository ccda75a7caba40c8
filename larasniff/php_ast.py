#!/usr/bin/env python3
"""
Read-only queries over tree-sitter PHP nodes.

Analyzers reason about method chains (``User::with('x')->where(..)->get()``),
literal strings and class declarations far more than about raw node types;
the helpers here keep that vocabulary in one place.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .ts_adapter import TSNode


MEMBER_CALLS = frozenset({'member_call_expression', 'nullsafe_member_call_expression'})
PROPERTY_FETCHES = frozenset({'member_access_expression', 'nullsafe_member_access_expression'})
CHAIN_LINKS = MEMBER_CALLS | PROPERTY_FETCHES
CALL_TYPES = MEMBER_CALLS | {'scoped_call_expression', 'function_call_expression'}

CLOSURE_TYPES = frozenset({
    'anonymous_function', 'anonymous_function_creation_expression', 'arrow_function',
})
FUNCTION_LIKE = CLOSURE_TYPES | {'function_definition', 'method_declaration'}
CLASS_LIKE = frozenset({
    'class_declaration', 'trait_declaration', 'interface_declaration', 'enum_declaration',
})
LOOP_TYPES = frozenset({'foreach_statement', 'for_statement', 'while_statement', 'do_statement'})

_STRING_PARTS = frozenset({'string_content', 'string_value', 'escape_sequence'})


# ---------------------------------------------------------------------------
# Method chains
# ---------------------------------------------------------------------------

@dataclass
class Segment:
    """One link of a chain: a method call or a property fetch."""
    name: str
    node: TSNode
    is_call: bool
    is_static: bool = False

    @property
    def arguments(self) -> List[TSNode]:
        return self.node.get_arguments() if self.is_call else []


@dataclass
class Chain:
    root: TSNode
    segments: List[Segment] = field(default_factory=list)

    @property
    def static_class(self) -> Optional[str]:
        """Class name when the chain starts with ``Name::method()``."""
        if self.segments and self.segments[0].is_static:
            return class_name(self.root)
        return None

    @property
    def root_variable(self) -> Optional[str]:
        return variable(self.root)

    @property
    def calls(self) -> List[Segment]:
        return [s for s in self.segments if s.is_call]

    @property
    def method_names(self) -> List[str]:
        return [s.name for s in self.segments if s.is_call]

    @property
    def root_function(self) -> str:
        """Helper function name for chains like ``app()->make()``."""
        if self.root.type == 'function_call_expression':
            return self.root.get_function_name()
        return ''

    def find(self, name: str) -> Optional[Segment]:
        for seg in self.segments:
            if seg.is_call and seg.name == name:
                return seg
        return None

    def __len__(self):
        return len(self.segments)


def unwind_chain(node: TSNode) -> Chain:
    """Split a call/fetch expression into its root and ordered segments."""
    segments = []
    current = node
    while current is not None:
        t = current.type
        if t in MEMBER_CALLS or t in PROPERTY_FETCHES:
            name_node = current.child_by_field('name')
            name = name_node.text if name_node is not None and name_node.type == 'name' else ''
            segments.append(Segment(name, current, t in MEMBER_CALLS))
            current = current.child_by_field('object')
        elif t == 'scoped_call_expression':
            segments.append(Segment(current.get_function_name(), current, True, True))
            current = current.child_by_field('scope')
            break
        elif t == 'parenthesized_expression' and current.named_children:
            current = current.named_children[0]
        else:
            break
    segments.reverse()
    return Chain(current if current is not None else node, segments)


def is_chain_top(node: TSNode) -> bool:
    """True unless `node` is the object of an enclosing call or fetch."""
    parent = node.parent
    while parent is not None and parent.type == 'parenthesized_expression':
        node, parent = parent, parent.parent
    if parent is None or parent.type not in CHAIN_LINKS:
        return True
    obj = parent.child_by_field('object')
    return obj is None or obj.key != node.key


# ---------------------------------------------------------------------------
# Literals
# ---------------------------------------------------------------------------

def argument_value(arg: Optional[TSNode]) -> Optional[TSNode]:
    """Expression of an ``argument`` node (skips a named-argument label)."""
    if arg is None:
        return None
    if arg.type != 'argument':
        return arg
    named = arg.named_children
    return named[-1] if named else None


def string_value(node: Optional[TSNode]) -> Optional[str]:
    """Value of a non-interpolated string literal, else None."""
    node = argument_value(node)
    if node is None:
        return None
    if node.type == 'string':
        text = node.text
        if text[:1] in ('b', 'B'):
            text = text[1:]
        inner = text[1:-1]
        if text[:1] == "'":
            return inner.replace("\\'", "'").replace('\\\\', '\\')
        return inner
    if node.type == 'encapsed_string':
        if all(c.type in _STRING_PARTS for c in node.named_children):
            return node.text[1:-1]
    return None


def array_items(node: Optional[TSNode]) -> Iterator[Tuple[Optional[TSNode], TSNode]]:
    """Yield (key, value) for each element of an array literal."""
    node = argument_value(node)
    if node is None or node.type != 'array_creation_expression':
        return
    for element in node.named_children:
        if element.type != 'array_element_initializer':
            continue
        named = element.named_children
        if not named:
            continue
        if element.has_token('=>') and len(named) >= 2:
            yield named[0], named[-1]
        else:
            yield None, named[-1]


def string_list(node: Optional[TSNode]) -> List[str]:
    """Literal string or the literal values of an array of strings."""
    node = argument_value(node)
    single = string_value(node)
    if single is not None:
        return [single]
    values = []
    for key, value in array_items(node):
        if key is None:
            s = string_value(value)
            if s is not None:
                values.append(s)
    return values


def is_dynamic_string(node: Optional[TSNode]) -> bool:
    """Concatenation or interpolation that builds a string at runtime."""
    node = argument_value(node)
    if node is None:
        return False
    if node.type == 'binary_expression':
        op = node.child_by_field('operator')
        if (op is not None and op.text == '.') or node.has_token('.'):
            return True
    if node.type in ('encapsed_string', 'heredoc'):
        return any(c.type not in _STRING_PARTS and c.type not in ('heredoc_start', 'heredoc_end',
                                                                  'heredoc_body')
                   for c in node.named_children) or _heredoc_interpolated(node)
    return False


def _heredoc_interpolated(node: TSNode) -> bool:
    if node.type != 'heredoc':
        return False
    return any(n.type in ('variable_name', 'member_access_expression', 'subscript_expression')
               for n in node.walk_descendants())


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

def class_name(node: Optional[TSNode]) -> Optional[str]:
    if node is None:
        return None
    if node.type in ('name', 'qualified_name'):
        return node.text.lstrip('\\')
    if node.type == 'relative_scope':
        return node.text
    return None


def short_name(name: str) -> str:
    return name.rsplit('\\', 1)[-1]


def variable(node: Optional[TSNode]) -> Optional[str]:
    if node is not None and node.type == 'variable_name':
        return node.text
    return None


def declared_name(node: TSNode) -> Optional[str]:
    name = node.child_by_field('name')
    return name.text if name is not None else None


def parent_class_name(class_node: TSNode) -> Optional[str]:
    """Base class as written in the ``extends`` clause."""
    base = class_node.first_child_of_type('base_clause')
    if base is None:
        return None
    for child in base.named_children:
        name = class_name(child)
        if name:
            return name
    return None


def is_anonymous_class(node: TSNode) -> bool:
    if node.type == 'anonymous_class':
        return True
    return (node.type == 'object_creation_expression'
            and node.first_child_of_type('declaration_list') is not None)


def is_closure(node: Optional[TSNode]) -> bool:
    node = argument_value(node)
    return node is not None and node.type in CLOSURE_TYPES


def new_class_name(node: TSNode) -> Optional[str]:
    """Class instantiated by ``new X(...)``."""
    if node.type != 'object_creation_expression':
        return None
    for child in node.named_children:
        name = class_name(child)
        if name:
            return name
    return None


# ---------------------------------------------------------------------------
# Class members
# ---------------------------------------------------------------------------

def class_body(class_node: TSNode) -> Optional[TSNode]:
    body = class_node.child_by_field('body')
    if body is None:
        body = class_node.first_child_of_type('declaration_list')
    return body


def class_methods(class_node: TSNode) -> List[TSNode]:
    body = class_body(class_node)
    if body is None:
        return []
    return [c for c in body.named_children if c.type == 'method_declaration']


def method_visibility(method: TSNode) -> str:
    mod = method.first_child_of_type('visibility_modifier')
    return mod.text.lower() if mod is not None else 'public'


def is_static_method(method: TSNode) -> bool:
    return method.first_child_of_type('static_modifier') is not None


def class_properties(class_node: TSNode) -> Iterator[Tuple[str, Optional[TSNode], TSNode]]:
    """Yield (name without '$', default value node, declaration) per property."""
    body = class_body(class_node)
    if body is None:
        return
    for decl in body.named_children:
        if decl.type != 'property_declaration':
            continue
        for element in decl.named_children:
            if element.type != 'property_element':
                continue
            var = element.first_child_of_type('variable_name')
            if var is None:
                continue
            yield var.text.lstrip('$'), _property_default(element), decl


def _property_default(element: TSNode) -> Optional[TSNode]:
    value = element.child_by_field('default_value')
    if value is not None:
        return value
    init = element.first_child_of_type('property_initializer')
    if init is not None:
        named = init.named_children
        return named[0] if named else None
    named = [c for c in element.named_children if c.type != 'variable_name']
    return named[-1] if named else None


def method_body(method: TSNode) -> Optional[TSNode]:
    return method.child_by_field('body')


def walk_local(node: TSNode) -> Iterator[TSNode]:
    """Descendants of `node` without entering nested functions or classes."""
    stack = list(reversed(node.named_children))
    while stack:
        current = stack.pop()
        yield current
        if current.type in FUNCTION_LIKE or current.type in CLASS_LIKE or is_anonymous_class(current):
            continue
        stack.extend(reversed(current.named_children))


def return_expressions(body: TSNode) -> List[Optional[TSNode]]:
    """Expressions of every ``return`` in a function body (None for bare returns)."""
    exprs = []
    for node in walk_local(body):
        if node.type == 'return_statement':
            named = [c for c in node.named_children if c.type != 'comment']
            exprs.append(named[0] if named else None)
    return exprs


def line_count(node: TSNode) -> int:
    return node.end_line - node.line + 1


def statements(block: Optional[TSNode]) -> List[TSNode]:
    if block is None:
        return []
    return [c for c in block.named_children if c.type != 'comment']


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------

def foreach_parts(node: TSNode) -> Tuple[Optional[TSNode], Optional[TSNode], Optional[TSNode]]:
    """(iterated expression, value variable, body) of a foreach statement."""
    named = [c for c in node.named_children if c.type != 'comment']
    if len(named) < 2:
        return None, None, None
    iterable, value = named[0], named[1]
    if value.type in ('pair', 'foreach_pair') and value.named_children:
        value = value.named_children[-1]
    if value.type == 'by_ref' and value.named_children:
        value = value.named_children[0]
    return iterable, value, node.child_by_field('body')


def loop_body_range(node: TSNode) -> Tuple[int, int]:
    """Byte range of a loop's body (everything after the header)."""
    body = node.child_by_field('body')
    if body is not None:
        return body.start_byte, body.end_byte
    if node.type == 'foreach_statement':
        _iterable, value, _body = foreach_parts(node)
        if value is not None:
            return value.end_byte, node.end_byte
    return node.start_byte, node.end_byte


# ---------------------------------------------------------------------------
# Complexity
# ---------------------------------------------------------------------------

_DECISION_NODES = frozenset({
    'if_statement', 'else_if_clause', 'case_statement', 'for_statement',
    'foreach_statement', 'while_statement', 'do_statement', 'catch_clause',
    'conditional_expression', 'match_expression',
})
_DECISION_OPERATORS = frozenset({'&&', '||', 'and', 'or', '??'})


def cyclomatic_complexity(function: TSNode) -> int:
    """1 plus one per branch, loop, catch, boolean operator and match arm condition."""
    complexity = 1
    for node in walk_local(function):
        t = node.type
        if t in _DECISION_NODES:
            complexity += 1
        elif t == 'binary_expression':
            op = node.child_by_field('operator')
            if op is not None and op.text.lower() in _DECISION_OPERATORS:
                complexity += 1
        elif t == 'match_conditional_expression':
            conditions = node.child_by_field('conditional_expressions')
            complexity += len(conditions.named_children) if conditions is not None else 1
    return complexity


def nesting_depth(node: TSNode, types=frozenset({'if_statement'})) -> int:
    """Deepest nesting of `types` below `node` (nested functions excluded)."""
    best = 0
    stack = [(c, 0) for c in node.named_children]
    while stack:
        current, depth = stack.pop()
        if current.type in FUNCTION_LIKE or current.type in CLASS_LIKE:
            continue
        if current.type in types:
            depth += 1
            best = max(best, depth)
        stack.extend((c, depth) for c in current.named_children)
    return best
