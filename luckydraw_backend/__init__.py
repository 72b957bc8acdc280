# Let Django's MySQL backend run on PyMySQL when mysqlclient isn't installed.
try:
    import MySQLdb  # noqa: F401
except ImportError:
    import pymysql

    pymysql.install_as_MySQLdb()
