"""CodeSense CLI - codesense command."""
