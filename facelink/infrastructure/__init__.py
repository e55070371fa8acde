"""Infrastructure implementations of the domain interfaces."""
