"""
Module entry point for: python -m quizcompiler

Allows running the compiler directly as a module:
    python -m quizcompiler parse <input> [options]
    python -m quizcompiler tokens <input>
    python -m quizcompiler validate <json_path>
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
