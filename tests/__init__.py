# kvbackup test suite
