"""kvtables core package: configuration, errors, the database and table handles."""
