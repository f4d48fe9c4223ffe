#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# sgftree.py (Smart Game Format tree parser)
# Copyright © 2000-2021 David John Goodger (goodger@python.org)
#
# This library is free software; you can redistribute it and/or modify it
# under the terms of the GNU Lesser General Public License as published by the
# Free Software Foundation; either version 2 of the License, or (at your
# option) any later version.
#
# This library is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or
# FITNESS FOR A PARTICULAR PURPOSE.  See the GNU Lesser General Public License
# for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# (lgpl.txt) along with this library; if not, write to the Free Software
# Foundation, Inc., 59 Temple Place, Suite 330, Boston, MA  02111-1307  USA
# The license is currently available on the Internet at:
#     http://www.gnu.org/copyleft/lesser.html

"""
=========================================
 Smart Game Format Tree Parser: sgftree
=========================================

This module parses SGF, the Smart Game Format (file format 4, FF[4]), into a
plain tree of `Node` objects. (See `the official SGF specification
<https://www.red-bean.com/sgf/>`_.)

Given a string containing a complete SGF data instance, `parse()` returns a
`Collection`: a list of root `Node` objects, one per top-level game tree.
Each `Node` carries a mapping of properties (``node.properties``) and a list
of continuations (``node.children``). A straight continuation is a single
child; a branch point has one child per variation.

Parsing runs in four strictly sequential stages:

1. `Tokenizer` scans the text into a flat list of `Token` objects.
2. `assemble_properties()` groups one node's identifier & value tokens into
   a property map.
3. `condense()` finds each node's run of property tokens and replaces it
   with an annotated node token.
4. `TreeBuilder` matches the parentheses and assembles the tree.

Property values are decoded (escapes removed) but not interpreted. A property
given one bracketed value maps to a string; a property given several maps to
a list of strings, in source order::

    >>> collection = parse('(;AB[aa][bb]C[a\\\\]b](;B[cc])(;B[dd]))')
    >>> root = collection[0]
    >>> root.properties
    {'AB': ['aa', 'bb'], 'C': 'a]b'}
    >>> [child['B'] for child in root.children]
    ['cc', 'dd']

Whitespace between tokens is skipped. Any other unexpected character outside
a property value is skipped with a `StrayCharacterWarning`, unless
``strict=True`` is passed, in which case it is an error. Every other problem
is fatal and raises a `ParseError` subclass; no partial tree is returned.
"""


import re
import warnings
import collections


TEXT_ENCODING = 'UTF-8'
"""Encoding used to decode `bytes` input when none is given."""

DEFAULT_MAX_DEPTH = 250
"""Default limit on the nesting depth of game trees (parentheses)."""


class Error(Exception):
    """Base class for sgftree exceptions."""
    pass

# Parsing Exceptions

class ParseError(Error):
    """Base class for parsing exceptions."""
    pass

class InputDecodeError(ParseError):
    """Raised by `Parser.parse()` when `bytes` input cannot be decoded."""
    pass

class StrayCharacterError(ParseError):

    """Raised by `Tokenizer.tokenize()` in strict mode."""

    def __init__(self, char, position):
        self.char = char
        self.position = position
        super().__init__(
            f'unexpected character {char!r} at position {position}')

class PropertyValueParseError(ParseError):
    """Base class for property value exceptions."""
    pass

class UnterminatedValueError(PropertyValueParseError):

    """Raised by `Tokenizer.tokenize()` when a value has no closing "]"."""

    def __init__(self, position):
        self.position = position
        super().__init__(
            f'missing closing bracket for value opened at position '
            f'{position}')

class NodePropertyParseError(ParseError):
    """Base class for node property exceptions."""
    pass

class MissingPropertyValueError(NodePropertyParseError):

    """
    Raised by `Tokenizer.tokenize()` & `assemble_properties()` when a
    property identifier is not immediately followed by a value.
    """

    def __init__(self, name, position=None):
        self.name = name
        self.position = position
        super().__init__(
            f"expected value after property identifier '{name}'")

class OrphanValueError(NodePropertyParseError):

    """Raised by `assemble_properties()`."""

    def __init__(self, position):
        self.position = position
        super().__init__(
            f'property value at position {position} has no property '
            f'identifier')

class TreeParseError(ParseError):
    """Base class for game tree structure exceptions."""
    pass

class UnbalancedTreeError(TreeParseError):

    """Raised by `TreeBuilder` for an unmatched "(" or ")"."""

    def __init__(self, position):
        self.position = position
        super().__init__(
            f'unbalanced tree delimiters (at position {position})')

class UnexpectedTokenError(TreeParseError):

    """Raised by `condense()` & `TreeBuilder`."""

    def __init__(self, token, detail=None):
        self.token = token
        message = (
            f'unexpected token {token.type!r} at position {token.position}')
        if detail:
            message = f'{message}: {detail}'
        super().__init__(message)

class NestingDepthError(TreeParseError):

    """Raised by `TreeBuilder` when variations nest too deeply."""

    def __init__(self, max_depth):
        self.max_depth = max_depth
        super().__init__(
            f'game trees nested more than {max_depth} levels deep')

class EndOfDataParseError(ParseError):
    """Base class for exceptions caused by running out of data."""
    pass

class EmptyTreeError(EndOfDataParseError):

    """Raised by `TreeBuilder` when a game tree or node is missing."""

    def __init__(self, position=None):
        self.position = position
        if position is None:
            message = 'empty tree: no game tree found'
        else:
            message = f'empty tree at position {position}'
        super().__init__(message)

# Warnings

class SGFWarning(UserWarning):
    """Base class for sgftree warnings."""
    pass

class StrayCharacterWarning(SGFWarning):
    """Issued by `Tokenizer.tokenize()` for skipped characters."""
    pass

class DuplicatePropertyWarning(SGFWarning):
    """Issued by `assemble_properties()`."""
    pass


# Token types. The structural types are their own SGF characters.
TREE_OPEN = '('
TREE_CLOSE = ')'
NODE_START = ';'
PROPERTY_IDENT = 'PropIdent'
PROPERTY_VALUE = 'PropValue'

STRUCTURAL_TYPES = frozenset((TREE_OPEN, TREE_CLOSE, NODE_START))

Token = collections.namedtuple('Token', ['type', 'value', 'position'])
Token.__doc__ = """\
One lexical unit of SGF data.

`type` is one of the token type constants. `value` is ``None`` for
structural tokens, the name for ``PropIdent``, the decoded text for
``PropValue``, and the property map (or ``None``) for a node token annotated
by `condense()`. `position` is the index of the token in the source text."""


class Collection(list):

    """
    A `Collection` is a `list` of one or more root `Node` objects, one per
    top-level game tree.
    """

    def __repr__(self):
        """
        The canonical string representation of the `Collection`.
        """
        if not self:
            return '{}()'.format(self.__class__.__name__)
        return '{}({}, ...)'.format(self.__class__.__name__, repr(self[0]))

    def main_line(self, gamenum=0):
        """Return the main line of the given game; see `Node.main_line()`."""
        return self[gamenum].main_line()


class Node:

    """
    An SGF node (one move or play, or initial setup), consisting of
    properties (ID-value pairs) and continuations.

    Instance attributes:

    self.properties : dict or ``None``
       Mapping of property ID to value. A value is a string if the property
       had one bracketed value, or a list of strings if it had several.
       ``None`` if the node has no properties.

    self.children : list of `Node`
       One child for a straight continuation, one per variation at a branch
       point, none at the end of a line.

    Example: Let ``node`` be a `Node` parsed from ';B[aa]BL[250]TR[bb][cc]':

    * node['BL'] =>  '250'
    * node['TR'] =>  ['bb', 'cc']
    """

    def __init__(self, properties=None, children=None):
        self.properties = properties if properties else None
        self.children = [] if children is None else children

    def __getitem__(self, pid):
        if self.properties is None:
            raise KeyError(pid)
        return self.properties[pid]

    def __contains__(self, pid):
        return self.properties is not None and pid in self.properties

    def get(self, pid, default=None):
        if self.properties is None:
            return default
        return self.properties.get(pid, default)

    def values(self, pid):
        """Return the values of property `pid` as a list (empty if absent)."""
        value = self.get(pid)
        if value is None:
            return []
        elif isinstance(value, list):
            return value[:]
        else:
            return [value]

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        # Iterative, as main lines can be hundreds of nodes long:
        pairs = [(self, other)]
        while pairs:
            mine, theirs = pairs.pop()
            if (  mine.properties != theirs.properties
                  or len(mine.children) != len(theirs.children)):
                return False
            pairs.extend(zip(mine.children, theirs.children))
        return True

    __hash__ = None

    def __repr__(self):
        parts = []
        if self.properties:
            parts.extend('{}={!r}'.format(pid, value)
                         for (pid, value) in self.properties.items())
        if self.children:
            parts.append('children={}'.format(len(self.children)))
        return '{}({})'.format(self.__class__.__name__, ', '.join(parts))

    def main_line(self):
        """
        Return the main line of the game from this node: a list of nodes
        starting with `self` and following the first child at every step.
        """
        line = [self]
        node = self
        while node.children:
            node = node.children[0]
            line.append(node)
        return line

    def walk(self):
        """Iterate over this node and its descendants, depth-first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def property_search(self, pid, getall=False):
        """
        Search this node and its descendants (in `walk()` order) for nodes
        containing property `pid`. Return a list of the matched node(s).

        Arguments:

        - pid : string -- ID of properties to search for.
        - getall : boolean -- Set to true to return all `Node`'s that match,
          or to false to return only the first match.
        """
        matches = []
        for node in self.walk():
            if pid in node:
                matches.append(node)
                if not getall:
                    break
        return matches


class Tokenizer:

    """
    Lexical scanner for SGF text. `Tokenizer.tokenize()` returns a list of
    `Token` objects for the entire text.

    Outside property values, "(", ")" and ";" are structural tokens, and runs
    of uppercase letters are property identifiers, each of which must be
    immediately followed by a "[" value. Inside a value, a backslash escapes
    the next character. Whitespace is skipped; any other character is skipped
    with a `StrayCharacterWarning` (or raises `StrayCharacterError` if
    `strict`).
    """

    soft_line_breaks = False
    """If true, a backslash followed by a line break is removed from values
    entirely (an SGF "soft" line break), rather than keeping the line break.
    May be overridden (preferably in instances)."""

    class patterns:
        """Regular expression text matching patterns."""
        identifier    = re.compile(r'[A-Z]+')
        whitespace    = re.compile(r'\s+')
        value_special = re.compile(r'[\\\]]')
        line_break    = re.compile(r'\r\n?|\n\r?')    # CR, LF, CR/LF, LF/CR

    def __init__(self, text, strict=False):
        self.text = text
        """The complete SGF data instance (`str`)."""

        self.strict = strict
        """Treat stray characters as errors instead of warnings."""

    def tokenize(self):
        """
        Scan `self.text` and return its list of tokens.

        Raise `UnterminatedValueError`, `MissingPropertyValueError` or (if
        `self.strict`) `StrayCharacterError` if a problem is encountered.
        """
        text = self.text
        length = len(text)
        tokens = []
        index = 0
        while index < length:
            char = text[index]
            if char == '[':
                value, end = self.scan_value(index)
                tokens.append(Token(PROPERTY_VALUE, value, index))
                index = end
                continue
            match = self.patterns.identifier.match(text, index)
            if match:
                name = match.group()
                tokens.append(Token(PROPERTY_IDENT, name, index))
                index = match.end()
                if index >= length or text[index] != '[':
                    raise MissingPropertyValueError(name, match.start())
                continue
            match = self.patterns.whitespace.match(text, index)
            if match:
                index = match.end()
                continue
            if char in STRUCTURAL_TYPES:
                tokens.append(Token(char, None, index))
            else:
                self.stray_character(char, index)
            index += 1
        return tokens

    def scan_value(self, start):
        """
        Scan the property value whose "[" is at index `start`. Return the
        decoded value and the index just past its closing "]".
        """
        text = self.text
        parts = []
        index = start + 1
        while True:
            match = self.patterns.value_special.search(text, index)
            if not match:
                raise UnterminatedValueError(start)
            parts.append(text[index:match.start()])
            index = match.end()
            if match.group() == ']':
                return ''.join(parts), index
            # backslash escape:
            if index >= len(text):
                raise UnterminatedValueError(start)
            if self.soft_line_breaks:
                mbreak = self.patterns.line_break.match(text, index)
                if mbreak:
                    index = mbreak.end()
                    continue
            parts.append(text[index])
            index += 1

    def stray_character(self, char, position):
        if self.strict:
            raise StrayCharacterError(char, position)
        warnings.warn(
            f'Skipped character {char!r} at position {position}: not valid '
            f'SGF outside a property value.',
            StrayCharacterWarning, stacklevel=4)


def assemble_properties(run):
    """
    Return the property map for one node's run of ``PropIdent`` &
    ``PropValue`` tokens, or ``None`` if `run` is empty.

    A property with one value maps to the value itself; a property with
    several maps to a list of them, in order. A repeated property ID keeps
    collecting values into the same list, with a `DuplicatePropertyWarning`.

    Raise `OrphanValueError` for a value with no preceding identifier, and
    `MissingPropertyValueError` for an identifier with no value.
    """
    entries = {}
    values = None
    for token in run:
        if token.type == PROPERTY_IDENT:
            if token.value in entries:
                warnings.warn(
                    f'Duplicate property ID "{token.value}" in node at '
                    f'position {token.position}. Appending new value(s).',
                    DuplicatePropertyWarning, stacklevel=4)
            values = entries.setdefault(token.value, [])
        elif token.type == PROPERTY_VALUE:
            if values is None:
                raise OrphanValueError(token.position)
            values.append(token.value)
        else:
            raise UnexpectedTokenError(token, 'expected a property')
    if not entries:
        return None
    properties = {}
    for (name, values) in entries.items():
        if not values:
            raise MissingPropertyValueError(name)
        properties[name] = values[0] if len(values) == 1 else values
    return properties


def node_end(tokens, start):
    """
    Return the index of the first structural token after index `start` in
    `tokens`, or ``len(tokens)`` if there is none.
    """
    for index in range(start + 1, len(tokens)):
        if tokens[index].type in STRUCTURAL_TYPES:
            return index
    return len(tokens)


def condense(tokens):
    """
    Return a new list of only the structural tokens in `tokens`, with each
    node token's ``value`` set to its property map.

    Raise `UnexpectedTokenError` for property tokens outside any node.
    """
    condensed = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token.type == NODE_START:
            end = node_end(tokens, index)
            properties = assemble_properties(tokens[index+1:end])
            condensed.append(token._replace(value=properties))
            index = end
        elif token.type in STRUCTURAL_TYPES:
            condensed.append(token)
            index += 1
        else:
            raise UnexpectedTokenError(token, 'property outside of a node')
    return condensed


class TreeBuilder:

    """
    Builds the tree of `Node` objects from a condensed token list (see
    `condense()`). `TreeBuilder.build()` returns a `Collection`.

    The condensed tokens are read through index ranges; nothing is copied or
    modified. Straight continuations are followed in a loop, so only nested
    variations add to the recursion depth, which is capped by `max_depth`
    (``None`` for no limit).
    """

    def __init__(self, tokens, max_depth=DEFAULT_MAX_DEPTH):
        self.tokens = tokens
        self.max_depth = max_depth

    def build(self):
        """
        Build and return the `Collection` of game trees.

        Raise a `TreeParseError` or `EmptyTreeError` if a problem is
        encountered.
        """
        if not self.tokens:
            raise EmptyTreeError
        return Collection(self.build_trees(0, len(self.tokens), 0))

    def find_tree_end(self, start, end):
        """
        Return the index of the ")" matching the "(" at index `start`,
        searching no further than index `end`.
        """
        depth = 0
        for index in range(start + 1, end):
            token_type = self.tokens[index].type
            if token_type == TREE_OPEN:
                depth += 1
            elif token_type == TREE_CLOSE:
                if depth == 0:
                    return index
                depth -= 1
        raise UnbalancedTreeError(self.tokens[start].position)

    def build_trees(self, start, end, depth):
        """
        Build the sibling game trees in ``self.tokens[start:end]``, which
        begins with "(". Return a list of their root nodes.
        """
        if self.max_depth is not None and depth >= self.max_depth:
            raise NestingDepthError(self.max_depth)
        trees = []
        index = start
        while index < end:
            token = self.tokens[index]
            if token.type == TREE_CLOSE:
                raise UnbalancedTreeError(token.position)
            elif token.type != TREE_OPEN:
                raise UnexpectedTokenError(
                    token, 'expected "(" to start a game tree')
            tree_end = self.find_tree_end(index, end)
            if tree_end == index + 1:
                raise EmptyTreeError(token.position)
            trees.append(self.build_node(index + 1, tree_end, depth + 1))
            index = tree_end + 1
        return trees

    def build_node(self, start, end, depth):
        """
        Build the game tree in ``self.tokens[start:end]``, which begins with
        a node. Return its root `Node`.
        """
        first = self.tokens[start]
        if first.type != NODE_START:
            raise UnexpectedTokenError(
                first, 'a game tree must begin with a node')
        root = node = Node(first.value)
        index = start + 1
        while index < end:
            token = self.tokens[index]
            if token.type == NODE_START:
                child = Node(token.value)
                node.children.append(child)
                node = child
                index += 1
            elif token.type == TREE_OPEN:
                node.children = self.build_trees(index, end, depth)
                break
            else:
                raise UnexpectedTokenError(token)
        return root


class Parser:

    """
    Parser for SGF data. `Parser.parse()` will return a `Collection` object
    for the entire data.

    Arguments:

    - data : `str`, or `bytes` to be decoded with `encoding`.
    - strict : boolean -- Raise `StrayCharacterError` on stray characters
      instead of warning.
    - encoding : string -- Encoding of `bytes` data (default
      `TEXT_ENCODING`).
    - max_depth : integer or ``None`` -- Limit on game tree nesting.
    """

    tokenizer_class = Tokenizer
    builder_class = TreeBuilder

    def __init__(self, data, strict=False, encoding=None,
                 max_depth=DEFAULT_MAX_DEPTH):
        self.data = data
        self.strict = strict
        self.encoding = TEXT_ENCODING if encoding is None else encoding
        self.max_depth = max_depth

    def parse(self):
        """
        Parse the SGF data stored in `self.data`, and return a `Collection`.
        """
        tokens = self.tokenizer_class(
            self.decode(self.data), strict=self.strict).tokenize()
        return self.builder_class(
            condense(tokens), max_depth=self.max_depth).build()

    def decode(self, data):
        if not isinstance(data, (bytes, bytearray)):
            return data
        try:
            return data.decode(self.encoding)
        except (UnicodeDecodeError, LookupError) as error:
            raise InputDecodeError(
                f'Unable to decode SGF data as {self.encoding}: {error}'
                ) from error


def parse(text, strict=False, encoding=None, max_depth=DEFAULT_MAX_DEPTH):
    """
    Parse the SGF data `text` and return a `Collection` of root nodes.
    See `Parser` for the arguments.
    """
    return Parser(text, strict, encoding, max_depth).parse()
