#!/usr/bin/env python

# Taxonomy tables for taxreport
# Loads a flat taxID/parent/name/rank table into an in-memory forest.

import sys
import os
import io
import gzip
import logging
import requests

####################
# Global variables #
####################

TAXONOMY_FILE_NAME = "taxDB"
DB_PATH_ENV        = "TAXREPORT_DB_PATH"
DEFAULT_DB_ENV     = "TAXREPORT_DEFAULT_DB"
DOWNLOAD_TIMEOUT   = 60

ROOT_TAXID         = 1
UNCLASSIFIED_TAXID = 0

rank_to_code = {
	'species'      : 'S',
	'genus'        : 'G',
	'family'       : 'F',
	'order'        : 'O',
	'class'        : 'C',
	'phylum'       : 'P',
	'kingdom'      : 'K',
	'superkingdom' : 'D'
}

class TaxonomyError(Exception):
	pass

class Taxonomy:
	"""
	A forest of taxa indexed by taxid.

	names, ranks and parents are keyed by taxid. children maps a taxid to the
	list of its child taxids in the order the records were loaded.
	"""
	def __init__(self):
		self.names    = {}
		self.ranks    = {}
		self.parents  = {}
		self.children = {}

	def __contains__(self, taxID):
		return taxID in self.names

	def __len__(self):
		return len(self.names)

	def add(self, taxID, parentID, name, rank):
		self.names[taxID] = name
		self.ranks[taxID] = rank
		self.parents[taxID] = parentID
		# the root points at itself
		if parentID != taxID:
			self.children.setdefault(parentID, []).append(taxID)

	def childTaxids(self, taxID):
		return self.children.get(taxID, [])

	def name(self, taxID):
		return self.names.get(taxID, "")

	def rank(self, taxID):
		return self.ranks.get(taxID, "")

####################
#      Methods     #
####################

def rank2code( rank ):
	return rank_to_code.get(rank, '-')

def taxid2rankCode( taxonomy, taxID ):
	return rank2code( taxonomy.rank(taxID) )

def taxidIsLeaf( taxonomy, taxID ):
	return not taxonomy.childTaxids(taxID)

def parseTaxonomyLine( line ):
	"""
	Parse one taxonomy record: taxID, parentTaxID, name, rank[, ...].
	Extra columns are ignored. Returns None for a blank line.
	"""
	if not line.strip():
		return None
	line = line.rstrip('\r\n')

	fields = line.split('\t')
	if len(fields) < 4:
		raise ValueError( f"expected 4 tab-separated fields, got {len(fields)}" )

	tid, parent, name, rank = fields[:4]
	return int(tid), int(parent), name, rank

def find_db( db_prefix=None ):
	"""
	Resolve a database name to a directory.

	Without a name the TAXREPORT_DEFAULT_DB environment variable is used. A name
	containing '/' is taken as a path; otherwise the directories listed in
	TAXREPORT_DB_PATH (colon-separated), then the current directory, are searched.
	"""
	if not db_prefix:
		db_prefix = os.environ.get(DEFAULT_DB_ENV, "")
		if not db_prefix:
			_die( f"[ERROR] Must specify a database with --db or the {DEFAULT_DB_ENV} environment variable.\n" )

	if "/" in db_prefix:
		if not os.path.isdir( db_prefix ):
			_die( f"[ERROR] Database {db_prefix} does not exist or is not a directory.\n" )
		return os.path.abspath( db_prefix )

	search_dirs = [d for d in os.environ.get(DB_PATH_ENV, "").split(":") if d]
	search_dirs.append(".")

	for d in search_dirs:
		path = os.path.join(d, db_prefix)
		if os.path.isdir( path ):
			logging.debug(f"Found database {db_prefix} in {d}")
			return os.path.abspath( path )

	_die( f"[ERROR] Unable to find database {db_prefix} (searched: {':'.join(search_dirs)}).\n" )

def taxonomy_file_from_db( db_dir ):
	return os.path.join( db_dir, TAXONOMY_FILE_NAME )

def loadTaxonomy( source ):
	"""
	Load a taxonomy table from a file path, a .gz file or an http(s) URL.

	The process exits if the source cannot be read. Malformed records raise
	TaxonomyError.
	"""
	taxonomy = Taxonomy()

	logging.info( f"Open taxonomy file: {source}" )

	try:
		with _openTaxonomy( source ) as f:
			for lineno, line in enumerate(f, 1):
				try:
					record = parseTaxonomyLine( line )
				except ValueError as e:
					raise TaxonomyError( f"{source}, line {lineno}: {e}" )
				if record:
					taxonomy.add( *record )
	except (IOError, UnicodeDecodeError, requests.RequestException) as e:
		_die( f"[ERROR] Failed to open taxonomy file {source}: {e}\n" )

	logging.info( f"Done parsing taxonomy file ({len(taxonomy)} taxa loaded)." )

	return taxonomy

##########################
##  Internal functions  ##
##########################

def _die( msg ):
	sys.exit(msg)

def _openTaxonomy( source ):
	if source.startswith(("http://", "https://")):
		logging.info( f"Downloading taxonomy from {source}..." )
		r = requests.get(source, timeout=DOWNLOAD_TIMEOUT)
		r.raise_for_status()
		return io.StringIO(r.text)
	if source.endswith(".gz"):
		return gzip.open(source, "rt", encoding="utf-8")
	return open(source, encoding="utf-8")

if __name__ == '__main__':
	taxonomy = loadTaxonomy( sys.argv[1] )

	inid = 0
	try:
		inid = input("\nEnter taxid: ")
	except EOFError:
		inid = 0

	while(inid):
		taxid = int(inid)
		print( "name( %s )           => %s" % (taxid, taxonomy.name(taxid)) )
		print( "rank( %s )           => %s" % (taxid, taxonomy.rank(taxid)) )
		print( "taxid2rankCode( %s ) => %s" % (taxid, taxid2rankCode(taxonomy, taxid)) )
		print( "taxidIsLeaf( %s )    => %s" % (taxid, taxidIsLeaf(taxonomy, taxid)) )
		print( "childTaxids( %s )    => %s" % (taxid, taxonomy.childTaxids(taxid)) )

		try:
			inid = input("\nEnter taxid: ")
		except EOFError:
			inid = 0
