import unittest
import os
import sys
import gzip
import tempfile
import shutil
from unittest.mock import patch, MagicMock
from pathlib import Path

import requests

# Get the path to the project root directory
current_dir = Path(__file__).parent
project_root = current_dir.parent
sys.path.insert(0, str(project_root))

from taxreport.scripts import taxonomy as gt

TAXDB_LINES = [
    "1\t1\troot\tno rank\n",
    "2\t1\tBacteria\tsuperkingdom\tignored\textra\n",
    "1224\t2\tProteobacteria\tphylum\n",
    "562\t561\tEscherichia coli\tspecies\n",  # child listed before its parent
    "561\t543\tEscherichia\tgenus\n",
    "\n",
    "543\t1224\tEnterobacteriaceae\tfamily\n",
    "620\t543\tShigella\tgenus\n",
]

class TestTaxonomy(unittest.TestCase):
    """Tests for taxonomy.py functions."""

    @classmethod
    def setUpClass(cls):
        """Create a minimal taxonomy database once for all tests."""
        cls.test_dir = tempfile.mkdtemp()
        cls.db_dir = os.path.join(cls.test_dir, "test_db")
        os.makedirs(cls.db_dir)

        cls.taxdb_file = gt.taxonomy_file_from_db(cls.db_dir)
        with open(cls.taxdb_file, 'w') as f:
            f.writelines(TAXDB_LINES)

        cls.taxdb_gz_file = os.path.join(cls.test_dir, "taxDB.gz")
        with gzip.open(cls.taxdb_gz_file, 'wt') as f:
            f.writelines(TAXDB_LINES)

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.test_dir)

    def setUp(self):
        self.taxonomy = gt.loadTaxonomy(self.taxdb_file)

    def test_taxonomy_loading(self):
        """Names, ranks and parents are keyed by integer taxid."""
        self.assertEqual(len(self.taxonomy), 7)
        self.assertEqual(self.taxonomy.name(562), "Escherichia coli")
        self.assertEqual(self.taxonomy.rank(562), "species")
        self.assertEqual(self.taxonomy.parents[562], 561)
        self.assertIn(1224, self.taxonomy)
        self.assertNotIn(999999, self.taxonomy)

    def test_extra_fields_ignored(self):
        self.assertEqual(self.taxonomy.name(2), "Bacteria")
        self.assertEqual(self.taxonomy.rank(2), "superkingdom")

    def test_children_in_load_order(self):
        self.assertEqual(self.taxonomy.childTaxids(543), [561, 620])
        self.assertEqual(self.taxonomy.childTaxids(561), [562])
        self.assertEqual(self.taxonomy.childTaxids(562), [])

    def test_root_is_not_its_own_child(self):
        self.assertEqual(self.taxonomy.childTaxids(1), [2])

    def test_missing_taxid_lookups(self):
        self.assertEqual(self.taxonomy.name(999999), "")
        self.assertEqual(self.taxonomy.rank(999999), "")
        self.assertEqual(self.taxonomy.childTaxids(999999), [])

    def test_taxidIsLeaf(self):
        self.assertTrue(gt.taxidIsLeaf(self.taxonomy, 562))
        self.assertFalse(gt.taxidIsLeaf(self.taxonomy, 561))

    def test_load_gzip(self):
        taxonomy = gt.loadTaxonomy(self.taxdb_gz_file)
        self.assertEqual(taxonomy.names, self.taxonomy.names)
        self.assertEqual(taxonomy.children, self.taxonomy.children)

    def test_missing_file_is_fatal(self):
        with self.assertRaises(SystemExit) as cm:
            gt.loadTaxonomy(os.path.join(self.test_dir, "no_such_taxDB"))
        self.assertIn("no_such_taxDB", str(cm.exception.code))

    def test_malformed_record(self):
        bad_file = os.path.join(self.test_dir, "bad_taxDB")
        with open(bad_file, 'w') as f:
            f.write("1\t1\troot\tno rank\n")
            f.write("2\t1\tBacteria\n")
        with self.assertRaises(gt.TaxonomyError) as cm:
            gt.loadTaxonomy(bad_file)
        self.assertIn("line 2", str(cm.exception))

    def test_non_integer_taxid(self):
        bad_file = os.path.join(self.test_dir, "bad_taxid_taxDB")
        with open(bad_file, 'w') as f:
            f.write("abc\t1\troot\tno rank\n")
        with self.assertRaises(gt.TaxonomyError):
            gt.loadTaxonomy(bad_file)

    def test_whitespace_only_lines_skipped(self):
        spaced_file = os.path.join(self.test_dir, "spaced_taxDB")
        with open(spaced_file, 'w') as f:
            f.write("1\t1\troot\tno rank\n")
            f.write("   \n")
            f.write("\t\t\n")
            f.write("2\t1\tBacteria\tsuperkingdom\n")
        taxonomy = gt.loadTaxonomy(spaced_file)
        self.assertEqual(len(taxonomy), 2)
        self.assertEqual(taxonomy.childTaxids(1), [2])

    def test_non_utf8_taxonomy_is_fatal(self):
        bad_file = os.path.join(self.test_dir, "latin1_taxDB")
        with open(bad_file, 'wb') as f:
            f.write(b"1\t1\troot\tno rank\n")
            f.write(b"2\t1\tBact\xffria\tsuperkingdom\n")
        with self.assertRaises(SystemExit) as cm:
            gt.loadTaxonomy(bad_file)
        self.assertIn("[ERROR] Failed to open taxonomy file", str(cm.exception.code))

    def test_corrupt_gzip_taxonomy_is_fatal(self):
        bad_file = os.path.join(self.test_dir, "corrupt_taxDB.gz")
        with open(bad_file, 'w') as f:
            f.write("not gzip data\n")
        with self.assertRaises(SystemExit) as cm:
            gt.loadTaxonomy(bad_file)
        self.assertIn("corrupt_taxDB.gz", str(cm.exception.code))

    @patch('taxreport.scripts.taxonomy.requests.get')
    def test_load_from_url(self, mock_get):
        mock_response = MagicMock()
        mock_response.text = "".join(TAXDB_LINES)
        mock_get.return_value = mock_response

        taxonomy = gt.loadTaxonomy("https://example.org/taxDB")

        mock_get.assert_called_once_with("https://example.org/taxDB", timeout=gt.DOWNLOAD_TIMEOUT)
        mock_response.raise_for_status.assert_called_once()
        self.assertEqual(taxonomy.name(620), "Shigella")

    @patch('taxreport.scripts.taxonomy.requests.get')
    def test_url_failure_is_fatal(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(SystemExit):
            gt.loadTaxonomy("http://example.org/taxDB")

class TestRankCode(unittest.TestCase):
    """Tests for the rank name to single letter mapping."""

    def test_major_ranks(self):
        expected = {
            'species': 'S', 'genus': 'G', 'family': 'F', 'order': 'O',
            'class': 'C', 'phylum': 'P', 'kingdom': 'K', 'superkingdom': 'D',
        }
        for rank, code in expected.items():
            self.assertEqual(gt.rank2code(rank), code)

    def test_other_ranks(self):
        self.assertEqual(gt.rank2code("no rank"), "-")
        self.assertEqual(gt.rank2code("subspecies"), "-")
        self.assertEqual(gt.rank2code(""), "-")

    def test_taxid2rankCode(self):
        taxonomy = gt.Taxonomy()
        taxonomy.add(1, 1, "root", "no rank")
        taxonomy.add(2, 1, "Bacteria", "superkingdom")
        self.assertEqual(gt.taxid2rankCode(taxonomy, 2), "D")
        self.assertEqual(gt.taxid2rankCode(taxonomy, 1), "-")
        self.assertEqual(gt.taxid2rankCode(taxonomy, 42), "-")

class TestFindDb(unittest.TestCase):
    """Tests for database discovery."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.db_dir = os.path.join(self.test_dir, "mydb")
        os.makedirs(self.db_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_path_with_slash(self):
        self.assertEqual(gt.find_db(self.db_dir), os.path.abspath(self.db_dir))

    def test_search_db_path(self):
        other_dir = os.path.join(self.test_dir, "empty")
        os.makedirs(other_dir)
        env = {gt.DB_PATH_ENV: f"{other_dir}:{self.test_dir}"}
        with patch.dict(os.environ, env):
            self.assertEqual(gt.find_db("mydb"), os.path.abspath(self.db_dir))

    def test_default_db(self):
        with patch.dict(os.environ, {gt.DEFAULT_DB_ENV: self.db_dir}):
            self.assertEqual(gt.find_db(None), os.path.abspath(self.db_dir))

    def test_no_db_given(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(SystemExit):
                gt.find_db(None)

    def test_db_not_found(self):
        with patch.dict(os.environ, {gt.DB_PATH_ENV: self.test_dir}):
            with self.assertRaises(SystemExit):
                gt.find_db("no_such_db_anywhere")
        with self.assertRaises(SystemExit):
            gt.find_db(os.path.join(self.test_dir, "missing"))

    def test_taxonomy_file_from_db(self):
        self.assertEqual(gt.taxonomy_file_from_db(self.db_dir), os.path.join(self.db_dir, "taxDB"))

if __name__ == '__main__':
    unittest.main()
