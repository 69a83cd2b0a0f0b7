"""Front end of the rule language: lexer and parser."""

from mailrules.parse.lexer import Lexer, Token, TokenKind
from mailrules.parse.parser import Parser, parse, parse_file

__all__ = ["Lexer", "Parser", "Token", "TokenKind", "parse", "parse_file"]
