#!/usr/bin/env python3

__version__   = "1.0.0"
__date__      = "2026/10/17"

import argparse as ap
import sys, os, time, gzip
from collections import namedtuple
from itertools import chain
import numpy as np
import pandas as pd
import logging

try:
    # Try relative import first (for package usage)
    from . import taxonomy as gt
except ImportError:
    # Fall back to direct import (for script usage)
    import taxonomy as gt

ReportRow = namedtuple('ReportRow', ['percent', 'clade_reads', 'taxon_reads', 'rank_code', 'taxid', 'depth', 'name'])

REPORT_COLUMNS = ['PERCENT', 'CLADE_READS', 'TAXON_READS', 'RANK', 'TAXID', 'DEPTH', 'NAME']

class InputFormatError(Exception):
    pass

def parse_params(ver, args):
    """
    Parse and validate command line arguments for taxreport.

    Parameters:
        ver (str): Version string to display in help messages
        args (list): Command line arguments to parse

    Returns:
        argparse.Namespace: Object containing all validated arguments

    Raises:
        SystemExit: If validation fails or --version is specified
    """
    p = ap.ArgumentParser( prog='taxreport', description="""Summarize per-read taxonomic
            classifications into a hierarchical report. For every taxon the report lists the
            percentage and number of reads in its clade, the reads assigned directly to it,
            its rank code, its taxid and its indented name. (VERSION: %s)""" % ver)

    p.add_argument( 'input', metavar='[FILE]', nargs='*', default=['-'],
                    help="Classification output file(s). Gzip-compressed files (.gz) are accepted. Use '-' for standard input. [default: -]")

    p.add_argument( '-d','--db', metavar='[DB]', type=str, default=None,
                    help="Name or path of the database holding the taxonomy table (%s). Names without '/' are searched in $%s. [default: $%s]" % (gt.TAXONOMY_FILE_NAME, gt.DB_PATH_ENV, gt.DEFAULT_DB_ENV))

    p.add_argument( '-t','--taxonomy', metavar='[FILE|URL]', type=str, default=None,
                    help="Taxonomy table (taxID, parentTaxID, name, rank) as a file, a .gz file or an http(s) URL. Overrides --db.")

    p.add_argument( '-z','--show-zeros', dest='showZeros', action="store_true",
                    help="Display taxa even if they lack any assigned reads.")

    mg = p.add_mutually_exclusive_group()

    mg.add_argument( '-c','--taxon-counts', dest='taxonCounts', action="store_true",
                    help="Input lines are 'taxonID [count]' pairs instead of classification records.")

    mg.add_argument( '-l','--taxon-list', dest='taxonList', action="store_true",
                    help="Input lines are whitespace separated lists of taxon IDs.")

    p.add_argument( '-fm','--format', metavar='[STR]', type=str, default='report',
                    choices=['report','tsv','csv'],
                    help='Format of the results; available options include report, tsv or csv. [default: report]')

    p.add_argument( '-o','--output', metavar='[FILE]', type=str, default='-',
                    help="Output file. Use '-' for standard output. [default: -]")

    p.add_argument( '--log', metavar='[FILE]', type=str, default=None,
                    help="Append progress messages to this file.")

    p.add_argument( '-v','--version', action="store_true",
                    help="Print version number.")

    p.add_argument( '--silent', action="store_true",
                    help="Disable all messages.")

    p.add_argument( '--verbose', action="store_true",
                    help="Provide verbose messages.")

    p.add_argument( '--debug', action="store_true",
                    help="Debug mode. Provide verbose running messages.")

    args_parsed = p.parse_args(args)

    """
    Checking options
    """
    if args_parsed.version:
        print( ver )
        sys.exit(0)

    if not args_parsed.taxonomy:
        db_dir = gt.find_db( args_parsed.db )
        args_parsed.taxonomy = gt.taxonomy_file_from_db( db_dir )

    if args_parsed.taxonCounts:
        args_parsed.mode = 'counts'
    elif args_parsed.taxonList:
        args_parsed.mode = 'list'
    else:
        args_parsed.mode = 'classification'

    return args_parsed

def _to_int(value, what, line):
    try:
        return int(value)
    except ValueError:
        raise InputFormatError( f"invalid {what} '{value}' in line: {line.rstrip()}" )

def parse_classification_line(line):
    """
    Classification output: tab-separated, taxid in the third column.
    """
    if not line.strip():
        return
    fields = line.rstrip('\r\n').split('\t')
    if len(fields) < 3:
        raise InputFormatError( f"expected at least 3 tab-separated fields in line: {line.rstrip()}" )
    yield _to_int(fields[2], 'taxon ID', line), 1

def parse_taxon_counts_line(line):
    """
    'taxonID [count]' per line, count defaults to 1.
    """
    fields = line.split()
    if not fields:
        return
    count = _to_int(fields[1], 'count', line) if len(fields) > 1 else 1
    yield _to_int(fields[0], 'taxon ID', line), count

def parse_taxon_list_line(line):
    for tid in line.split():
        yield _to_int(tid, 'taxon ID', line), 1

INPUT_PARSERS = {
    'classification': parse_classification_line,
    'counts':         parse_taxon_counts_line,
    'list':           parse_taxon_list_line,
}

def open_input(fn):
    if fn == '-':
        return sys.stdin
    if fn.endswith('.gz'):
        return gzip.open(fn, 'rt', encoding='utf-8')
    return open(fn, encoding='utf-8')

def read_lines(filenames):
    for fn in filenames:
        logging.info(f"Reading input: {fn}")
        f = open_input(fn)
        try:
            for line in f:
                yield line
        finally:
            if f is not sys.stdin:
                f.close()

def read_assignments(filenames, parser):
    """
    Lazily yield (taxid, increment) pairs from the input files.

    Parameters:
        filenames (list): Input file names; '-' is standard input
        parser (function): Line parser, one of INPUT_PARSERS

    Yields:
        tuple: (taxid, increment)
    """
    return chain.from_iterable(parser(line) for line in read_lines(filenames))

def accumulate_counts(pairs, taxonomy, err=None):
    """
    Fold (taxid, increment) pairs into per-taxon read counts.

    Taxids missing from the taxonomy are kept in the counts and reported once
    each to stderr after all pairs have been consumed.

    Parameters:
        pairs (iterable): (taxid, increment) tuples
        taxonomy (Taxonomy): Loaded taxonomy
        err (file): Stream for unknown-taxon warnings [default: sys.stderr]

    Returns:
        tuple: (
            raw_counts (dict): taxid -> reads assigned directly to the taxid,
            seq_count (int): total reads
        )
    """
    err = err or sys.stderr
    raw_counts = {}
    seq_count = 0

    for taxid, increment in pairs:
        raw_counts[taxid] = raw_counts.get(taxid, 0) + increment
        seq_count += increment

    for taxid in raw_counts:
        if taxid != gt.UNCLASSIFIED_TAXID and taxid not in taxonomy:
            err.write( f"Taxon {taxid} is not in taxonomy tables - ignoring it.\n" )

    return raw_counts, seq_count

def aggregate_clade_counts(taxonomy, raw_counts):
    """
    Compute clade counts (own reads plus all descendants' reads) for every taxon.

    Walks the forest from the root with an explicit stack; a node is summed once
    all of its children are done. Taxa not reachable from the root get 0, and
    the unclassified bucket keeps its raw count.

    Parameters:
        taxonomy (Taxonomy): Loaded taxonomy
        raw_counts (dict): taxid -> directly assigned reads

    Returns:
        dict: taxid -> clade count

    Raises:
        gt.TaxonomyError: If the taxonomy has a cycle below the root
    """
    clade_counts = {}
    on_path = set()
    stack = [(gt.ROOT_TAXID, False)]

    while stack:
        taxid, children_done = stack.pop()
        children = [c for c in taxonomy.childTaxids(taxid) if c != gt.UNCLASSIFIED_TAXID]

        if children_done:
            on_path.discard(taxid)
            clade_counts[taxid] = raw_counts.get(taxid, 0) + sum(clade_counts[c] for c in children)
            continue

        if taxid in on_path:
            raise gt.TaxonomyError( f"Taxonomy contains a cycle through taxon {taxid}." )
        if taxid in clade_counts:
            continue

        on_path.add(taxid)
        stack.append((taxid, True))
        stack.extend((c, False) for c in children)

    for taxid in taxonomy.names:
        clade_counts.setdefault(taxid, 0)

    clade_counts[gt.UNCLASSIFIED_TAXID] = raw_counts.get(gt.UNCLASSIFIED_TAXID, 0)

    return clade_counts

def percentage(count, seq_count):
    return count * 100 / seq_count if seq_count else 0.0

def iter_report_rows(taxonomy, raw_counts, clade_counts, seq_count, show_zeros=False):
    """
    Yield report rows: the unclassified bucket, then a depth-first walk from the root.

    Siblings are visited by descending clade count, ties by ascending taxid.
    Taxa with a zero clade count are skipped with their whole subtree unless
    show_zeros is set.
    """
    unclassified = clade_counts.get(gt.UNCLASSIFIED_TAXID, 0)
    yield ReportRow(percentage(unclassified, seq_count), unclassified,
                    raw_counts.get(gt.UNCLASSIFIED_TAXID, 0), 'U',
                    gt.UNCLASSIFIED_TAXID, 0, 'unclassified')

    stack = [(gt.ROOT_TAXID, 0)]
    while stack:
        taxid, depth = stack.pop()
        clade = clade_counts.get(taxid, 0)
        if not clade and not show_zeros:
            continue

        yield ReportRow(percentage(clade, seq_count), clade, raw_counts.get(taxid, 0),
                        gt.taxid2rankCode(taxonomy, taxid), taxid, depth, taxonomy.name(taxid))

        children = sorted((c for c in taxonomy.childTaxids(taxid) if c != gt.UNCLASSIFIED_TAXID),
                          key=lambda c: (-clade_counts.get(c, 0), c))
        # reversed so the largest clade is popped first
        stack.extend((c, depth + 1) for c in reversed(children))

def format_report_row(row):
    return "%6.2f\t%d\t%d\t%s\t%d\t%s%s" % (row.percent, row.clade_reads, row.taxon_reads,
                                             row.rank_code, row.taxid, "  " * row.depth, row.name)

def print_report(rows, o):
    """
    Write the indented text report. Returns the number of lines written.
    """
    cnt = 0
    for row in rows:
        o.write( format_report_row(row) + "\n" )
        cnt += 1
    return cnt

def generate_report_table(rows):
    """
    Collect report rows into a DataFrame with REPORT_COLUMNS, in report order.
    """
    df = pd.DataFrame(list(rows), columns=ReportRow._fields)
    df.columns = REPORT_COLUMNS
    df['PERCENT'] = np.round(df['PERCENT'].astype(float), 2)
    return df

def generate_report_file(rows, o, fmt="tsv"):
    """
    Write the report as a TSV or CSV table with a header line.
    Returns the number of taxa written.
    """
    df = generate_report_table(rows)
    sep = ',' if fmt=='csv' else '\t'
    df.to_csv(o, index=False, sep=sep, float_format='%.2f', quoting=2 if fmt=='csv' else 0)
    return len(df)

def time_spend(start):
    """
    Calculate and format elapsed time since a given start time.

    Parameters:
        start (float): Starting time in seconds (as returned by time.time())

    Returns:
        str: Formatted time string in HH:MM:SS format
    """
    done = time.time()
    elapsed = done - start
    return time.strftime( "%H:%M:%S", time.gmtime(elapsed) )

def print_message(msg, silent, start, logfile=None, errorout=0):
    """
    Print and log a timestamped message.

    Parameters:
        msg (str): Message to print
        silent (bool): If True, suppress output to stderr
        start (float): Start time for timestamp calculation
        logfile (str): Path to the log file; nothing is logged when None
        errorout (int): If non-zero, exit with error after printing

    Raises:
        SystemExit: If errorout is non-zero
    """
    message = "[%s] %s\n" % (time_spend(start), msg)

    if logfile:
        with open( logfile, "a" ) as f:
            f.write( message )

    if errorout:
        sys.exit( message )
    elif not silent:
        sys.stderr.write( message )

def main(args):
    """
    Main execution function for taxreport.
    """
    argvs = parse_params( __version__, args )
    begin_t = time.time()

    logging_level = logging.WARNING

    if argvs.debug:
        logging_level = logging.DEBUG
    elif argvs.silent:
        logging_level = logging.FATAL
    elif argvs.verbose:
        logging_level = logging.INFO

    logging.basicConfig(
        level=logging_level,
        format='%(asctime)s [%(levelname)s] %(module)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M',
    )

    silent = argvs.silent

    print_message( f"Starting taxreport (v{__version__})", silent, begin_t, argvs.log )
    print_message( f"    Input        : {argvs.input}",     silent, begin_t, argvs.log )
    print_message( f"    Taxonomy     : {argvs.taxonomy}",  silent, begin_t, argvs.log )
    print_message( f"    Input mode   : {argvs.mode}",      silent, begin_t, argvs.log )
    print_message( f"    Show zeros   : {argvs.showZeros}", silent, begin_t, argvs.log )
    print_message( f"    Format       : {argvs.format}",    silent, begin_t, argvs.log )
    print_message( f"    Output       : {argvs.output}",    silent, begin_t, argvs.log )

    #load taxonomy
    print_message( "Loading taxonomy information...", silent, begin_t, argvs.log )
    try:
        taxonomy = gt.loadTaxonomy( argvs.taxonomy )
    except gt.TaxonomyError as e:
        print_message( f"[ERROR] {e}", silent, begin_t, argvs.log, errorout=1 )
    print_message( f" - {len(taxonomy)} taxa loaded.", silent, begin_t, argvs.log )

    #count reads
    print_message( "Counting reads...", silent, begin_t, argvs.log )
    for fn in argvs.input:
        if fn != '-' and not os.path.isfile(fn):
            print_message( f"[ERROR] Input file {fn} not found.", silent, begin_t, argvs.log, errorout=1 )
    try:
        pairs = read_assignments( argvs.input, INPUT_PARSERS[argvs.mode] )
        raw_counts, seq_count = accumulate_counts( pairs, taxonomy )
    except (InputFormatError, OSError, UnicodeDecodeError) as e:
        print_message( f"[ERROR] {e}", silent, begin_t, argvs.log, errorout=1 )
    print_message( f" - {seq_count} reads counted over {len(raw_counts)} taxa.", silent, begin_t, argvs.log )

    if not seq_count:
        logging.warning("No reads found in the input; all percentages are reported as 0.00.")

    #roll up
    try:
        clade_counts = aggregate_clade_counts( taxonomy, raw_counts )
    except gt.TaxonomyError as e:
        print_message( f"[ERROR] {e}", silent, begin_t, argvs.log, errorout=1 )
    print_message( "Done taxonomy rolling up.", silent, begin_t, argvs.log )

    rows = iter_report_rows( taxonomy, raw_counts, clade_counts, seq_count, argvs.showZeros )

    out_fp = sys.stdout if argvs.output == '-' else open(argvs.output, 'w')
    try:
        if argvs.format == 'report':
            tax_num = print_report( rows, out_fp )
        else:
            tax_num = generate_report_file( rows, out_fp, argvs.format )
    finally:
        if out_fp is not sys.stdout:
            out_fp.close()

    print_message( f"{tax_num} taxa reported; results saved to {argvs.output}.", silent, begin_t, argvs.log )

if __name__ == '__main__':
    main(sys.argv[1:])
