import strawberry

from app.graphql.classes.mutations import ClassMutations
from app.graphql.classes.queries import ClassQueries
from app.graphql.sessions.mutations import TrainingSessionMutations
from app.graphql.sessions.queries import TrainingSessionQueries


@strawberry.type
class Query(TrainingSessionQueries, ClassQueries):
    @strawberry.field
    def hello(self) -> str:
        return "Hello from GraphQL!"


@strawberry.type
class Mutation(TrainingSessionMutations, ClassMutations):
    pass


schema = strawberry.Schema(query=Query, mutation=Mutation)
