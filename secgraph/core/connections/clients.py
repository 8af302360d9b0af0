from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from neo4j import GraphDatabase, Driver


class DatabaseClient(ABC):
    """Base class for all database clients"""

    @abstractmethod
    def test_connection(self) -> bool:
        """Test if the connection is working"""
        pass

    @abstractmethod
    def close(self):
        """Close the connection"""
        pass


class GraphDatabaseClient(DatabaseClient):
    """Base class for graph database clients"""

    @abstractmethod
    def query(self, cypher_query: str, parameters: Dict[str, Any] = None) -> list:
        """Execute a Cypher query"""
        pass


class Neo4jClient(GraphDatabaseClient):
    """
    Neo4j graph database client.

    The driver is created lazily, so constructing a client never touches
    the network. Connectivity is only checked through test_connection().
    """

    def __init__(self, uri: str, username: str, password: str,
                 database: str = "neo4j", **kwargs):
        self.uri = uri
        self.username = username
        self.password = password
        self.database = database
        self.driver_options = kwargs
        self.driver: Optional[Driver] = None

    def _connect(self) -> Driver:
        """Establish connection to Neo4j"""
        if self.driver is None:
            self.driver = GraphDatabase.driver(
                self.uri,
                auth=(self.username, self.password),
                **self.driver_options
            )
        return self.driver

    def query(self, cypher_query: str, parameters: Dict[str, Any] = None) -> list:
        """Execute a Cypher query using the driver"""
        driver = self._connect()
        with driver.session(database=self.database) as session:
            result = session.run(cypher_query, parameters or {})
            return [record.data() for record in result]

    def test_connection(self) -> bool:
        """Test Neo4j connection"""
        try:
            driver = self._connect()
            with driver.session(database=self.database) as session:
                session.run("RETURN 1 AS ok").consume()
            return True
        except Exception:
            return False

    def close(self):
        """Close Neo4j connection"""
        if self.driver:
            self.driver.close()
            self.driver = None
