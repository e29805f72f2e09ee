#!/usr/bin/env python3
import sys

try:
    from . import taxreport
except ImportError:
    import taxreport

def usage():
    """Display usage information for the taxreport command-line tool."""
    version = taxreport.__version__
    print(f"""
taxreport - hierarchical taxonomic abundance report v{version}

Usage:
    taxreport <command> [options]

Commands:
    report     Summarize per-read taxon assignments into an indented
               clade report

Examples:
    taxreport report --db my_db classification.txt
    taxreport report -t taxDB.gz --taxon-counts counts.tsv

For detailed help on a specific command:
    taxreport <command> --help
""")
    sys.exit(1)

def taxreport_command():
    args = sys.argv[1:]
    if len(args) < 1:
        usage()
    elif args[0] == "report":
        taxreport.main(args[1:])
    else:
        print(f"Error: '{args[0]}' is not a valid command")
        usage()

if __name__ == '__main__':
    taxreport_command()
